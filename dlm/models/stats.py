"""
Dataclasses for tracking the results of add and run batches.
"""

import time
from dataclasses import dataclass, field


@dataclass
class AddSummary:
    """Tracks what happened to each URL of an add batch."""

    added: int = 0
    duplicates: int = 0
    unmatched: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.added + self.duplicates + self.unmatched + self.failed


@dataclass
class ProcessStats:
    """Tracks statistics for a run batch, including its wall-clock duration."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errored: int = 0
    stopped_early: bool = False
    _start_time: float = field(default_factory=time.monotonic, repr=False)
    _end_time: float | None = field(default=None, repr=False)

    @property
    def processed(self) -> int:
        """Jobs that were attempted, whatever their outcome."""
        return self.succeeded + self.failed + self.skipped + self.errored

    @property
    def duration_s(self) -> float:
        end = self._end_time if self._end_time is not None else time.monotonic()
        return end - self._start_time

    def finish(self) -> None:
        self._end_time = time.monotonic()
