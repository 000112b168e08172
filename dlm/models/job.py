"""
Data classes for download jobs and their derived status counts.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle states of a job, in state-machine order."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    SUCCESS = "success"
    ERROR = "error"


class Priority(str, Enum):
    """Sort priority of a job. Higher priorities are listed and run first."""

    NORMAL = "normal"
    HIGH = "high"


def utc_now() -> datetime:
    """Returns the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class Job:
    """
    A single queued URL with its routing, status and outcome metadata.

    `id` is None until the job has been inserted into the store.
    """

    url: str
    collection: str
    status: JobStatus = JobStatus.PENDING
    priority: Priority = Priority.NORMAL
    created_at: datetime | None = None
    downloaded_at: datetime | None = None
    title: str | None = None
    error_message: str | None = None
    id: int | None = None

    @classmethod
    def new(
        cls,
        url: str,
        collection: str,
        title: str | None = None,
        priority: Priority = Priority.NORMAL,
    ) -> "Job":
        """Creates an unsaved pending job stamped with the current time."""
        return cls(
            url=url,
            collection=collection,
            title=title,
            priority=priority,
            created_at=utc_now(),
        )

    @property
    def display_name(self) -> str:
        return self.title or self.url

    def mark_downloading(self) -> None:
        self.status = JobStatus.DOWNLOADING
        self.downloaded_at = None
        self.error_message = None

    def mark_success(self, when: datetime | None = None) -> None:
        self.status = JobStatus.SUCCESS
        self.downloaded_at = when or utc_now()
        self.error_message = None

    def mark_error(self, message: str) -> None:
        # An empty message would break the error <=> error_message invariant.
        self.status = JobStatus.ERROR
        self.downloaded_at = None
        self.error_message = message or "unknown error"


@dataclass(frozen=True)
class StatusCount:
    """Number of stored jobs in one status."""

    status: JobStatus
    count: int
