"""
Storage Layer.

This package handles all data persistence: the job database and the
configuration file.
"""

from .config_manager import ConfigManager
from .job_store import JobStore

__all__ = ["ConfigManager", "JobStore"]
