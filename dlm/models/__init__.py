"""
Data Models Layer.

This package contains the dataclasses and Pydantic models that define the core
data structures used throughout the application: jobs, configuration and
batch statistics.
"""

from .config import Collection, DlmConfig
from .job import Job, JobStatus, Priority, StatusCount
from .stats import AddSummary, ProcessStats

__all__ = [
    "AddSummary",
    "Collection",
    "DlmConfig",
    "Job",
    "JobStatus",
    "Priority",
    "ProcessStats",
    "StatusCount",
]
