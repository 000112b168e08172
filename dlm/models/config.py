"""
Pydantic models for application configuration.
Provides robust validation for settings and collection definitions.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

# Token in a collection command that is replaced with the job's URL
URL_PLACEHOLDER = "%"


class Collection(BaseModel):
    """A named routing rule binding domains to a directory and a command template."""

    name: str
    domains: list[str]
    directory: str
    command: str

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v:
            raise ValueError("Collection name cannot be empty.")
        return v

    @field_validator("domains")
    @classmethod
    def validate_domains(cls, v: list[str]) -> list[str]:
        """Strips entries and rejects a collection that matches nothing."""
        domains = [d.strip() for d in v if d and d.strip()]
        if not domains:
            raise ValueError("Collection must define at least one domain.")
        return domains

    @field_validator("directory")
    @classmethod
    def validate_directory(cls, v: str) -> str:
        if not v:
            raise ValueError("Collection directory cannot be empty.")
        return v

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Ensures the template has a program and the URL placeholder."""
        if not v:
            raise ValueError("Collection command cannot be empty.")
        if URL_PLACEHOLDER not in v:
            raise ValueError(
                f"Collection command must contain the '{URL_PLACEHOLDER}' "
                "placeholder for the URL."
            )
        return v


class DlmConfig(BaseModel):
    """A validated configuration model for the application."""

    # Storage
    database: str = "dlm.db"

    # Daemon Settings
    daemon_interval_minutes: float = 5
    daemon_batch_size: int = 3

    # Add Settings
    add_delay_seconds: float = 0.5
    fetch_titles: bool = True

    # Logging
    log_dir: str = ""

    collections: list[Collection] = Field(default_factory=list)

    # Directory of the INI file; relative path settings are resolved against it
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("daemon_interval_minutes")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Daemon interval must be greater than zero.")
        return v

    @field_validator("daemon_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Daemon batch size must be at least 1.")
        return v

    @field_validator("add_delay_seconds")
    @classmethod
    def validate_add_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Add delay cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_collections(self) -> "DlmConfig":
        """Requires at least one collection and unique collection names."""
        if not self.collections:
            raise ValueError("No collections defined in configuration.")

        seen: set[str] = set()
        for collection in self.collections:
            if collection.name in seen:
                raise ValueError(f"Duplicate collection name: {collection.name}")
            seen.add(collection.name)
        return self

    def resolve_path(self, value: str) -> Path:
        """Resolves a path setting relative to the configuration file's directory."""
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return Path(self.config_path) / path

    @property
    def database_path(self) -> Path:
        return self.resolve_path(self.database)

    @property
    def log_dir_path(self) -> Path | None:
        return self.resolve_path(self.log_dir) if self.log_dir else None

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the [dlm] section."""
        internal_fields = {"config_path", "collections"}
        return {key for key in cls.model_fields if key not in internal_fields}
