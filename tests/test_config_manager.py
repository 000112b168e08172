import logging
from pathlib import Path

import pytest

from dlm.exceptions import ConfigurationError
from dlm.storage.config_manager import DEFAULT_COLLECTIONS, ConfigManager

VALID_INI = """\
[dlm]
database = jobs.db
daemon_interval_minutes = 2
daemon_batch_size = 4
fetch_titles = false

[collection:zeta]
domains = sub.example.com
dir = ./zeta
command = echo %

[collection:alpha]
domains = example.com, example.org
    example.net
dir = ./alpha
command = wget -O - %
"""


def write_config(tmp_path, text):
    path = tmp_path / "dlm.ini"
    path.write_text(text)
    return ConfigManager(path)


def test_load_config_reads_settings(tmp_path):
    config = write_config(tmp_path, VALID_INI).load_config()

    assert config.database == "jobs.db"
    assert config.daemon_interval_minutes == 2
    assert config.daemon_batch_size == 4
    assert config.fetch_titles is False
    assert config.add_delay_seconds == 0.5


def test_collections_keep_file_order(tmp_path):
    collections = write_config(tmp_path, VALID_INI).load_collections()

    assert [c.name for c in collections] == ["zeta", "alpha"]
    assert collections[1].domains == ["example.com", "example.org", "example.net"]
    assert collections[1].directory == "./alpha"
    assert collections[1].command == "wget -O - %"


def test_command_without_placeholder_is_rejected(tmp_path):
    manager = write_config(
        tmp_path,
        "[collection:bad]\ndomains = example.com\ndir = ./bad\ncommand = wget\n",
    )

    with pytest.raises(ConfigurationError, match="placeholder"):
        manager.load_config()


def test_collection_without_domains_is_rejected(tmp_path):
    manager = write_config(
        tmp_path, "[collection:bad]\ndomains =\ndir = ./bad\ncommand = echo %\n"
    )

    with pytest.raises(ConfigurationError):
        manager.load_config()


def test_config_without_collections_is_rejected(tmp_path):
    manager = write_config(tmp_path, "[dlm]\ndatabase = jobs.db\n")

    with pytest.raises(ConfigurationError, match="No collections"):
        manager.load_config()


def test_invalid_setting_value(tmp_path):
    manager = write_config(
        tmp_path, VALID_INI.replace("daemon_batch_size = 4", "daemon_batch_size = x")
    )

    with pytest.raises(ConfigurationError):
        manager.load_config()


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigManager(tmp_path / "absent.ini").load_config()


def test_unknown_keys_and_sections_are_ignored(tmp_path, caplog):
    text = VALID_INI + "\n[extra]\nfoo = bar\n"
    text = text.replace("[dlm]\n", "[dlm]\nmystery = 1\n")

    with caplog.at_level(logging.WARNING, logger="dlm"):
        config = write_config(tmp_path, text).load_config()

    assert len(config.collections) == 2
    assert "mystery" in caplog.text
    assert "[extra]" in caplog.text


def test_file_is_reread_on_every_load(tmp_path):
    manager = write_config(tmp_path, VALID_INI)
    assert manager.load_collections()[0].command == "echo %"

    manager.config_file_path.write_text(
        VALID_INI.replace("command = echo %", "command = true %")
    )

    assert manager.load_collections()[0].command == "true %"


def test_default_config_round_trip(tmp_path):
    manager = ConfigManager(tmp_path / "nested" / "dlm.ini")
    manager.save_default_config()

    config = manager.load_config()

    assert [c.name for c in config.collections] == [
        c["name"] for c in DEFAULT_COLLECTIONS
    ]
    assert config.collections[0].domains == DEFAULT_COLLECTIONS[0]["domains"]
    assert all("%" in c.command for c in config.collections)
    assert config.daemon_batch_size == 3


def test_relative_paths_resolve_against_the_config_directory(tmp_path, monkeypatch):
    config_dir = tmp_path / "conf"
    config_dir.mkdir()
    text = VALID_INI.replace(
        "fetch_titles = false", "fetch_titles = false\nlog_dir = logs"
    )
    write_config(config_dir, text)
    monkeypatch.chdir(tmp_path)

    config = ConfigManager(Path("conf") / "dlm.ini").load_config()

    assert config.database_path.resolve() == (config_dir / "jobs.db").resolve()
    assert config.log_dir_path.resolve() == (config_dir / "logs").resolve()


def test_absolute_database_path_is_kept(tmp_path):
    db_path = tmp_path / "elsewhere" / "jobs.db"
    config = write_config(
        tmp_path, VALID_INI.replace("database = jobs.db", f"database = {db_path}")
    ).load_config()

    assert config.database_path == db_path
    assert config.log_dir_path is None
