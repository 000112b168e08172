"""
Manages loading, validation, and creation of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from dlm.exceptions import ConfigurationError
from dlm.models.config import Collection, DlmConfig

log = logging.getLogger(__name__)

SETTINGS_SECTION = "dlm"
COLLECTION_PREFIX = "collection:"

DEFAULT_SETTINGS: dict[str, str] = {
    "database": "dlm.db",
    "daemon_interval_minutes": "5",
    "daemon_batch_size": "3",
    "add_delay_seconds": "0.5",
    "fetch_titles": "true",
    "log_dir": "",
}

DEFAULT_COLLECTIONS: list[dict[str, Any]] = [
    {
        "name": "yt",
        "domains": ["youtube.com", "youtu.be"],
        "dir": "./downloads/videos",
        "command": "yt-dlp %",
    },
    {
        "name": "gallery",
        "domains": ["reddit.com", "imgur.com"],
        "dir": "./downloads/images",
        "command": "gallery-dl %",
    },
    {
        "name": "wget",
        "domains": ["example.com"],
        "dir": "./downloads/files",
        "command": "wget -P . %",
    },
]


def _new_parser() -> configparser.ConfigParser:
    # Commands use '%' as the URL placeholder, so interpolation stays off.
    return configparser.ConfigParser(interpolation=None)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = Path(config_file_path)

    def _read(self) -> configparser.ConfigParser:
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'dlm init' first."
            )

        parser = _new_parser()
        try:
            parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e
        return parser

    def load_config(self) -> DlmConfig:
        """
        Loads configuration from the INI file and validates it.

        The file is re-read on every call so edits take effect without restart.

        Returns:
            A validated DlmConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        parser = self._read()
        config_from_file = self._get_settings_as_dict(parser)
        config_from_file["collections"] = self._get_collections_as_dicts(parser)

        try:
            return DlmConfig(
                **config_from_file, config_path=str(self.config_file_path.parent)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def load_collections(self) -> list[Collection]:
        """Loads the collections, in file order, from a fresh read of the file."""
        return self.load_config().collections

    def save_default_config(self) -> None:
        """Creates a configuration file with default settings and sample collections."""
        parser = _new_parser()
        parser[SETTINGS_SECTION] = dict(DEFAULT_SETTINGS)
        for collection in DEFAULT_COLLECTIONS:
            parser[f"{COLLECTION_PREFIX}{collection['name']}"] = {
                "domains": ", ".join(collection["domains"]),
                "dir": collection["dir"],
                "command": collection["command"],
            }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                parser.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e
        log.debug(f"Wrote default configuration to {self.config_file_path}")

    def _get_settings_as_dict(
        self, parser: configparser.ConfigParser
    ) -> dict[str, Any]:
        """Reads the [dlm] section into a dictionary, falling back to defaults."""
        if not parser.has_section(SETTINGS_SECTION):
            parser.add_section(SETTINGS_SECTION)
        section = parser[SETTINGS_SECTION]

        unknown = set(section.keys()) - DlmConfig.get_ini_keys()
        for key in sorted(unknown):
            log.warning(f"Ignoring unknown setting '{key}' in [{SETTINGS_SECTION}].")

        try:
            return {
                "database": section.get("database", DEFAULT_SETTINGS["database"]),
                "daemon_interval_minutes": section.getfloat(
                    "daemon_interval_minutes", 5
                ),
                "daemon_batch_size": section.getint("daemon_batch_size", 3),
                "add_delay_seconds": section.getfloat("add_delay_seconds", 0.5),
                "fetch_titles": section.getboolean("fetch_titles", True),
                "log_dir": section.get("log_dir", ""),
            }
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value in [{SETTINGS_SECTION}] section: {e}"
            ) from e

    def _get_collections_as_dicts(
        self, parser: configparser.ConfigParser
    ) -> list[dict[str, Any]]:
        """Reads every [collection:<name>] section, preserving file order."""
        collections = []
        for section_name in parser.sections():
            if section_name == SETTINGS_SECTION:
                continue
            if not section_name.startswith(COLLECTION_PREFIX):
                log.warning(f"Ignoring unknown section [{section_name}].")
                continue

            section = parser[section_name]
            collections.append(
                {
                    "name": section_name[len(COLLECTION_PREFIX) :].strip(),
                    # Domains may be separated by commas or newlines.
                    "domains": section.get("domains", "").replace(",", " ").split(),
                    "directory": section.get("dir", ""),
                    "command": section.get("command", ""),
                }
            )
        return collections
