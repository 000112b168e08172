"""
The orchestrator for adding URLs to the queue and running queued jobs.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence

from dlm.exceptions import CollectionNotFoundError, DlmError, DuplicateURLError
from dlm.models.config import Collection
from dlm.models.job import Job, JobStatus, Priority
from dlm.models.stats import AddSummary, ProcessStats
from dlm.storage.job_store import JobStore
from dlm.utils.structured_logger import JobLogger, StructuredLogger
from dlm.web.title_fetcher import fetch_page_title

from .executor import CommandExecutor, ExecutionResult, RunOutcome
from .resolver import find_collection, resolve_collection

CollectionsLoader = Callable[[], Sequence[Collection]]
TitleFetcher = Callable[[str], Awaitable[str | None]]


def has_control_chars(url: str) -> bool:
    """True if the URL contains ASCII control characters such as NUL or newline."""
    return any(ord(ch) < 32 or ord(ch) == 127 for ch in url)


def clean_urls(urls: Iterable[str]) -> list[str]:
    """Strips URLs, drops blanks and '#' comments, and removes repeats in order."""
    cleaned = (url.strip() for url in urls)
    return list(
        dict.fromkeys(url for url in cleaned if url and not url.startswith("#"))
    )


class JobProcessor:
    """
    Adds URLs as jobs and runs jobs through the command executor.

    Collections are requested from `collections_loader` on every add batch and
    every job run, so configuration edits apply without a restart.
    """

    def __init__(
        self,
        store: JobStore,
        collections_loader: CollectionsLoader,
        executor: CommandExecutor | None = None,
        title_fetcher: TitleFetcher | None = None,
        logger: StructuredLogger | None = None,
        add_delay: float = 0.5,
        fetch_titles: bool = True,
    ):
        self.store = store
        self.collections_loader = collections_loader
        self.logger = logger or StructuredLogger("dlm.processor")
        self.executor = executor or CommandExecutor(store, self.logger)
        self.title_fetcher = title_fetcher or fetch_page_title
        self.job_log = JobLogger(self.logger)
        self.add_delay = add_delay
        self.fetch_titles = fetch_titles

    async def _fetch_title(self, url: str) -> str | None:
        if not self.fetch_titles:
            return None
        try:
            return await self.title_fetcher(url)
        except Exception as e:
            # A title is cosmetic; never let it fail the add.
            self.logger.debug("title_fetch_failed", url=url, error=str(e))
            return None

    async def add_urls(
        self, urls: Iterable[str], priority: Priority = Priority.NORMAL
    ) -> AddSummary:
        """
        Resolves each URL to a collection and stores it as a pending job.

        URLs matching no collection are skipped with a warning. URLs already in
        the store count as duplicates, not errors. Between URLs of a multi-URL
        batch the processor waits `add_delay` seconds.

        Raises:
            ConfigurationError: If the collections cannot be loaded.
        """
        summary = AddSummary()
        filtered = clean_urls(urls)
        if not filtered:
            return summary

        collections = self.collections_loader()

        for i, url in enumerate(filtered):
            if has_control_chars(url):
                summary.failed += 1
                self.logger.warning(
                    "job_rejected", url=repr(url), reason="control characters in URL"
                )
                continue

            collection = resolve_collection(collections, url)
            if collection is None:
                summary.unmatched += 1
                self.job_log.job_unmatched(url)
                continue

            try:
                if self.store.get_by_url(url) is not None:
                    summary.duplicates += 1
                    self.job_log.job_duplicate(url)
                    continue

                title = await self._fetch_title(url)
                job = self.store.insert(
                    Job.new(url, collection.name, title=title, priority=priority)
                )
            except DuplicateURLError:
                summary.duplicates += 1
                self.job_log.job_duplicate(url)
                continue
            except DlmError as e:
                summary.failed += 1
                self.logger.error("job_add_failed", url=url, error=str(e))
                continue

            summary.added += 1
            self.job_log.job_added(job.id, job.url, job.collection, job.title)

            if len(filtered) > 1 and i < len(filtered) - 1 and self.add_delay > 0:
                await asyncio.sleep(self.add_delay)

        return summary

    async def add_url(
        self, url: str, priority: Priority = Priority.NORMAL
    ) -> AddSummary:
        return await self.add_urls([url], priority=priority)

    async def process_one(self, job: Job) -> ExecutionResult:
        """
        Runs a single job.

        Raises:
            CollectionNotFoundError: If the job's collection is no longer
                configured. The job's status is not changed.
            DirectoryError, StorageError, ConfigurationError: Surfaced as-is.
        """
        collection = find_collection(self.collections_loader(), job.collection)
        if collection is None:
            raise CollectionNotFoundError(
                f"Collection '{job.collection}' for job {job.id} ({job.url}) "
                "not found in config."
            )
        return await self.executor.run(job, collection)

    async def process_many(
        self,
        jobs: Iterable[Job],
        should_stop: Callable[[], bool] | None = None,
    ) -> ProcessStats:
        """
        Runs jobs one after another. A failing job is logged and counted; the
        rest of the batch still runs.

        Args:
            should_stop: Polled before each job; returning True ends the batch.
        """
        stats = ProcessStats()
        for job in jobs:
            if should_stop is not None and should_stop():
                stats.stopped_early = True
                self.logger.info("batch_interrupted", remaining_from_job_id=job.id)
                break

            try:
                result = await self.process_one(job)
            except DlmError as e:
                stats.errored += 1
                self.logger.error(
                    "job_process_failed", job_id=job.id, url=job.url, error=str(e)
                )
                continue

            if result.outcome is RunOutcome.SUCCESS:
                stats.succeeded += 1
            elif result.outcome is RunOutcome.ERROR:
                stats.failed += 1
            else:
                stats.skipped += 1

        stats.finish()
        return stats

    async def process_pending(
        self, limit: int = 0, should_stop: Callable[[], bool] | None = None
    ) -> ProcessStats:
        """Runs up to `limit` pending jobs (all of them if limit <= 0)."""
        jobs = self.store.list_by_status(JobStatus.PENDING, limit)
        return await self.process_many(jobs, should_stop=should_stop)
