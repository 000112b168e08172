"""
Runs a collection's external download command for a single job and records
the outcome in the job store and the collection's download log.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import aiofiles

from dlm.exceptions import DirectoryError
from dlm.models.config import URL_PLACEHOLDER, Collection
from dlm.models.job import Job, utc_now
from dlm.storage.job_store import JobStore
from dlm.utils.structured_logger import JobLogger, StructuredLogger

DOWNLOAD_LOG_NAME = "downloads.log"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class ExecutionResult:
    """What happened when a job was handed to the executor."""

    job: Job
    outcome: RunOutcome
    command_line: str = ""
    output: str = ""
    returncode: int | None = None


def build_command(template: str, url: str) -> tuple[str, list[str]]:
    """
    Substitutes the URL into a command template and splits it into argv.

    Tokenization is plain whitespace splitting. No shell is involved, so
    quotes, pipes and other metacharacters in the template or the URL are
    passed through literally.

    Returns:
        The resolved command line and its argument vector.
    """
    command_line = template.replace(URL_PLACEHOLDER, url)
    return command_line, command_line.split()


def format_log_entry(job: Job, command_line: str, output: str) -> str:
    """Formats one self-contained block of the per-collection download log."""
    return (
        f"\n=== Download {job.id} - {utc_now().isoformat()} ===\n"
        f"URL: {job.url}\n"
        f"Command: {command_line}\n"
        f"--- OUTPUT ---\n{output}\n"
        "--- END ---\n\n"
    )


class CommandExecutor:
    """
    Claims a pending job, runs its external command and persists the result.
    """

    def __init__(self, store: JobStore, logger: StructuredLogger | None = None):
        self.store = store
        self.logger = logger or StructuredLogger("dlm.executor")
        self.job_log = JobLogger(self.logger)

    async def run(self, job: Job, collection: Collection) -> ExecutionResult:
        """
        Manages the complete lifecycle of one download attempt.

        Raises:
            DirectoryError: If the collection directory cannot be created. The
                job is left untouched.
            StorageError: If the claim or the final status update fails. The
                job may be left in downloading and needs a reset.
        """
        directory = Path(collection.directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(
                f"Failed to create directory '{directory}' for job {job.id}: {e}"
            ) from e

        if not self.store.claim(job.id):
            self.job_log.job_skipped(job.id, job.url, "job is no longer pending")
            return ExecutionResult(job=job, outcome=RunOutcome.SKIPPED)
        job.mark_downloading()

        command_line, argv = build_command(collection.command, job.url)
        self.job_log.job_started(job.id, job.url, command_line)

        start = time.monotonic()
        output, returncode, start_error = await self._execute(argv, directory)
        await self._append_log(directory, job, command_line, output)

        if start_error is None and returncode == 0:
            job.mark_success()
            outcome = RunOutcome.SUCCESS
            self.job_log.job_succeeded(job.id, job.url, time.monotonic() - start)
        else:
            message = output.strip() or start_error or f"exit status {returncode}"
            job.mark_error(message)
            outcome = RunOutcome.ERROR
            self.job_log.job_failed(job.id, job.url, message)

        self.store.record_outcome(job)
        return ExecutionResult(
            job=job,
            outcome=outcome,
            command_line=command_line,
            output=output,
            returncode=returncode,
        )

    async def _execute(
        self, argv: list[str], cwd: Path
    ) -> tuple[str, int | None, str | None]:
        """
        Runs argv to completion with stdout and stderr merged.

        Returns:
            The decoded output, the exit code (None if the program never
            started) and the start failure text, if any.
        """
        if not argv:
            return "", None, "empty command"

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except (OSError, ValueError) as e:
            # ValueError: an argument contains a NUL byte
            return "", None, f"failed to start '{argv[0]}': {e}"

        stdout, _ = await process.communicate()
        return stdout.decode("utf-8", errors="replace"), process.returncode, None

    async def _append_log(
        self, directory: Path, job: Job, command_line: str, output: str
    ) -> None:
        """Appends the attempt to the collection log. Failures are only reported."""
        log_path = directory / DOWNLOAD_LOG_NAME
        try:
            async with aiofiles.open(log_path, "a", encoding="utf-8") as f:
                await f.write(format_log_entry(job, command_line, output))
        except OSError as e:
            self.logger.error(
                "download_log_write_failed",
                job_id=job.id,
                url=job.url,
                path=str(log_path),
                error=str(e),
            )
