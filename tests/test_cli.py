import pytest
from typer.testing import CliRunner

from dlm import __version__
from dlm.cli.app import app
from dlm.models.job import JobStatus, Priority
from dlm.storage.job_store import JobStore

runner = CliRunner()


@pytest.fixture
def paths(tmp_path):
    config_file = tmp_path / "dlm.ini"
    config_file.write_text(
        "[dlm]\n"
        "fetch_titles = false\n"
        "add_delay_seconds = 0\n"
        "\n"
        "[collection:test]\n"
        "domains = x.com\n"
        f"dir = {tmp_path / 'out'}\n"
        "command = echo %\n"
        "\n"
        "[collection:broken]\n"
        "domains = broken.org\n"
        f"dir = {tmp_path / 'broken'}\n"
        "command = false %\n"
    )
    return config_file, tmp_path / "jobs.db"


@pytest.fixture
def invoke(paths):
    config_file, db_path = paths

    def _invoke(*args, **kwargs):
        return runner.invoke(
            app, ["--config", str(config_file), "--db", str(db_path), *args], **kwargs
        )

    return _invoke


@pytest.fixture
def db(paths):
    return JobStore(paths[1])


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_add_and_count(invoke, db):
    result = invoke("add", "https://x.com/1", "https://x.com/2", "https://none.io/")

    assert result.exit_code == 0, result.output
    assert "2 added" in result.output
    assert "1 without collection" in result.output
    assert db.count_filtered(JobStatus.PENDING) == 2

    result = invoke("count")
    assert result.exit_code == 0
    assert "pending" in result.output


def test_add_from_stdin_with_high_priority(invoke, db):
    result = invoke(
        "add", "--stdin", "--high", input="https://x.com/1\n# skip\n\nhttps://x.com/2\n"
    )

    assert result.exit_code == 0, result.output
    jobs = db.list_by_status()
    assert len(jobs) == 2
    assert all(job.priority is Priority.HIGH for job in jobs)


def test_add_duplicate_is_reported(invoke, db):
    invoke("add", "https://x.com/1")
    result = invoke("add", "https://x.com/1")

    assert result.exit_code == 0
    assert "already present" in result.output
    assert db.count_filtered() == 1


def test_add_without_urls_fails(invoke):
    result = invoke("add")
    assert result.exit_code == 1


def test_dl_runs_pending_jobs(invoke, db, paths):
    invoke("add", "https://x.com/1", "https://broken.org/2")

    result = invoke("dl")

    assert result.exit_code == 0, result.output
    assert db.get_by_url("https://x.com/1").status is JobStatus.SUCCESS
    failed = db.get_by_url("https://broken.org/2")
    assert failed.status is JobStatus.ERROR
    assert failed.error_message == "exit status 1"
    assert (paths[0].parent / "out" / "downloads.log").exists()


def test_dl_with_nothing_pending(invoke):
    result = invoke("dl")
    assert result.exit_code == 0
    assert "No pending downloads" in result.output


def test_retry_only_applies_to_failed_jobs(invoke, db):
    invoke("add", "https://broken.org/1")
    job = db.get_by_url("https://broken.org/1")

    result = invoke("retry", str(job.id))
    assert result.exit_code == 1
    assert "only applies" in result.output

    invoke("dl")
    result = invoke("retry", str(job.id))

    assert result.exit_code == 0
    retried = db.get(job.id)
    assert retried.status is JobStatus.PENDING
    assert retried.error_message is None


def test_retry_missing_job(invoke):
    result = invoke("retry", "999")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_bulk_commands(invoke, db):
    invoke("add", "https://broken.org/1", "https://broken.org/2")
    invoke("dl")

    result = invoke("retry-failed")
    assert result.exit_code == 0
    assert db.count_filtered(JobStatus.PENDING) == 2

    invoke("dl")
    result = invoke("delete-failed", "--force")
    assert result.exit_code == 0
    assert db.count_filtered() == 0


def test_reset_downloading(invoke, db):
    invoke("add", "https://x.com/1")
    job = db.get_by_url("https://x.com/1")
    db.claim(job.id)

    result = invoke("reset-downloading")

    assert result.exit_code == 0
    assert db.get(job.id).status is JobStatus.PENDING


def test_list_show_priority_and_delete(invoke, db):
    invoke("add", "https://x.com/1")
    job = db.get_by_url("https://x.com/1")

    assert invoke("list").exit_code == 0
    assert invoke("list", "--status", "pending", "-q", "x.com").exit_code == 0
    assert invoke("list", "--status", "bogus").exit_code == 1

    result = invoke("show", str(job.id))
    assert result.exit_code == 0
    assert "https://x.com/1" in result.output

    assert invoke("priority", str(job.id), "high").exit_code == 0
    assert db.get(job.id).priority is Priority.HIGH

    assert invoke("delete", str(job.id)).exit_code == 0
    assert db.get(job.id) is None
    assert invoke("delete", str(job.id)).exit_code == 0


def test_show_missing_job(invoke):
    result = invoke("show", "42")
    assert result.exit_code == 1


def test_validate(invoke):
    result = invoke("validate")
    assert result.exit_code == 0
    assert "Validated" in result.output


def test_invalid_config_is_reported(tmp_path):
    config_file = tmp_path / "dlm.ini"
    config_file.write_text(
        "[collection:bad]\ndomains = x.com\ndir = ./bad\ncommand = echo\n"
    )

    result = runner.invoke(app, ["--config", str(config_file), "validate"])

    assert result.exit_code == 1
    assert "ConfigurationError" in result.output


def test_init_writes_a_loadable_config(tmp_path):
    config_file = tmp_path / "new.ini"

    result = runner.invoke(app, ["--config", str(config_file), "init"])

    assert result.exit_code == 0
    assert config_file.exists()
    result = runner.invoke(app, ["--config", str(config_file), "validate"])
    assert result.exit_code == 0


def test_store_commands_work_without_config(tmp_path):
    db_path = tmp_path / "jobs.db"
    result = runner.invoke(
        app,
        ["--config", str(tmp_path / "absent.ini"), "--db", str(db_path), "count"],
    )
    assert result.exit_code == 0
    assert db_path.exists()


def test_vacuum(invoke):
    result = invoke("vacuum")
    assert result.exit_code == 0
    assert "optimized" in result.output


def test_database_defaults_to_the_config_directory(paths, tmp_path, monkeypatch):
    config_file, _ = paths
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)
    monkeypatch.delenv("DLM_DB", raising=False)

    result = runner.invoke(
        app, ["--config", str(config_file), "add", "https://x.com/1"]
    )

    assert result.exit_code == 0, result.output
    assert JobStore(tmp_path / "dlm.db").get_by_url("https://x.com/1") is not None
    assert not (elsewhere / "dlm.db").exists()
