"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class DlmError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(DlmError):
    """Raised for issues related to configuration loading or validation."""


class StorageError(DlmError):
    """Raised when the job database cannot be read or written."""


class DuplicateURLError(StorageError):
    """Raised when inserting a job whose URL is already stored."""


class CollectionNotFoundError(DlmError):
    """Raised when a job references a collection missing from the configuration."""


class DirectoryError(DlmError):
    """Raised when a collection's download directory cannot be created."""
