"""
Background scheduler that periodically runs pending jobs.
"""

import asyncio

from dlm.exceptions import StorageError
from dlm.models.job import JobStatus
from dlm.models.stats import ProcessStats
from dlm.storage.job_store import JobStore
from dlm.utils.structured_logger import DaemonLogger, StructuredLogger

from .processor import JobProcessor


class Scheduler:
    """
    A cooperative loop that runs a pass immediately, then one pass per interval.

    Each pass takes up to `batch_size` pending jobs in store order. A stop
    request is honoured between ticks and between jobs of a pass; a command
    that is already running is allowed to finish.
    """

    def __init__(
        self,
        store: JobStore,
        processor: JobProcessor,
        interval_s: float = 300,
        batch_size: int = 3,
        logger: StructuredLogger | None = None,
    ):
        self.store = store
        self.processor = processor
        self.interval_s = interval_s
        self.batch_size = batch_size
        self.logger = logger or StructuredLogger("dlm.scheduler")
        self.daemon_log = DaemonLogger(self.logger)
        self._running = False
        self._stop_event = asyncio.Event()
        self.passes_completed = 0

    @property
    def running(self) -> bool:
        return self._running

    def _stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def start(self) -> None:
        """Runs the loop until stop() is called. A no-op if already running."""
        if self._running:
            self.logger.warning("daemon_already_running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self.daemon_log.daemon_started(self.interval_s, self.batch_size)
        try:
            while not self._stop_requested():
                await self.run_pass()
                if self._stop_requested():
                    break
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.interval_s
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
            self.daemon_log.daemon_stopped()

    def stop(self) -> None:
        """Requests the loop to end. A no-op when not running."""
        if not self._running:
            return
        self.logger.info("daemon_stopping")
        self._stop_event.set()

    async def run_pass(self) -> ProcessStats:
        """Runs one batch of pending jobs and returns its statistics."""
        self.daemon_log.pass_started(self.batch_size)
        try:
            jobs = self.store.list_by_status(JobStatus.PENDING, self.batch_size)
        except StorageError as e:
            self.logger.error("daemon_list_failed", error=str(e))
            stats = ProcessStats()
            stats.finish()
            return stats

        if not jobs:
            self.logger.info("daemon_no_pending_jobs")
            stats = ProcessStats()
            stats.finish()
            self.passes_completed += 1
            return stats

        stats = await self.processor.process_many(
            jobs, should_stop=self._stop_requested
        )
        self.passes_completed += 1
        self.daemon_log.pass_completed(
            stats.processed, stats.succeeded, stats.failed, stats.duration_s
        )
        return stats
