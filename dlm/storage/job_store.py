"""
Manages the SQLite database of download jobs and owns every status transition.
"""

import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from dlm.exceptions import DuplicateURLError, StorageError
from dlm.models.job import Job, JobStatus, Priority, StatusCount, utc_now
from dlm.utils.structured_logger import StructuredLogger

_COLUMNS = (
    "id, collection, createdAt, downloadedAt, priority, status, title, url,"
    " errorMessage"
)

# Nullable fields a conditional transition may reset, mapped to their columns
_CLEARABLE = {
    "error_message": "errorMessage",
    "downloaded_at": "downloadedAt",
}

_PRIORITY_ORDER = "CASE priority WHEN 'high' THEN 1 ELSE 0 END DESC, id DESC"


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    # Rows written by older tooling use a trailing 'Z' for UTC.
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _row_to_job(row: sqlite3.Row) -> Job:
    """
    Converts a database row into a Job.

    Raises:
        StorageError: If the row holds a value the model cannot represent, such
            as an unknown status or an unparsable timestamp.
    """
    try:
        return Job(
            id=row["id"],
            url=row["url"],
            collection=row["collection"],
            status=JobStatus(row["status"]),
            priority=Priority(row["priority"]),
            created_at=_parse_ts(row["createdAt"]),
            downloaded_at=_parse_ts(row["downloadedAt"]),
            title=row["title"],
            error_message=row["errorMessage"],
        )
    except (ValueError, KeyError, IndexError) as e:
        raise StorageError(f"Corrupt job row {row[0]}: {e}") from e


class JobStore:
    """
    A SQLite-backed table of download jobs.

    Every operation opens its own short-lived connection, so one store may be
    shared by the scheduler and on-demand runs. All mutations are single
    statements; recovery and claim transitions are conditional on the row's
    current status and report whether they matched.
    """

    def __init__(self, db_path: Path | str, logger: StructuredLogger | None = None):
        self.db_path = Path(db_path)
        self.logger = logger or StructuredLogger("dlm.storage")
        self._initialize_db()

    @contextmanager
    def _connection(self, action: str) -> Iterator[sqlite3.Connection]:
        """
        Yields a connection inside a transaction, committing on success.

        Raises:
            DuplicateURLError: If a statement violates the unique URL constraint.
            StorageError: For any other database failure.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to open job database '{self.db_path}': {e}"
            ) from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA synchronous=NORMAL;")
            with conn:
                yield conn
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) and "url" in str(e):
                raise DuplicateURLError(f"URL already stored: {e}") from e
            raise StorageError(f"Failed to {action}: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to {action}: {e}") from e
        finally:
            conn.close()

    def _initialize_db(self) -> None:
        """Creates the table and index if missing and migrates older schemas."""
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection("initialize job database") as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS downloads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    createdAt TEXT NOT NULL,
                    downloadedAt TEXT,
                    priority TEXT NOT NULL,
                    status TEXT NOT NULL,
                    title TEXT,
                    url TEXT NOT NULL UNIQUE,
                    errorMessage TEXT
                );
                """
            )
            columns = {
                row["name"] for row in conn.execute("PRAGMA table_info(downloads)")
            }
            if "errorMessage" not in columns:
                conn.execute("ALTER TABLE downloads ADD COLUMN errorMessage TEXT")
                self.logger.info("db_migrated", added_column="errorMessage")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_downloads_status_priority"
                " ON downloads(status, priority, id);"
            )

    # --- Single-row operations ---

    def insert(self, job: Job) -> Job:
        """
        Persists a new job in pending state and returns it with its assigned id.

        Raises:
            DuplicateURLError: If a job with the same URL already exists.
        """
        created_at = job.created_at or utc_now()
        with self._connection("insert job") as conn:
            cursor = conn.execute(
                "INSERT INTO downloads (collection, createdAt, downloadedAt, priority,"
                " status, title, url, errorMessage)"
                " VALUES (?, ?, NULL, ?, ?, ?, ?, NULL)",
                (
                    job.collection,
                    _format_ts(created_at),
                    Priority(job.priority).value,
                    JobStatus.PENDING.value,
                    job.title,
                    job.url,
                ),
            )
            job_id = cursor.lastrowid

        return replace(
            job,
            id=job_id,
            created_at=created_at,
            status=JobStatus.PENDING,
            downloaded_at=None,
            error_message=None,
        )

    def get(self, job_id: int) -> Job | None:
        """Returns the job with the given id, or None if there is none."""
        with self._connection("get job") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM downloads WHERE id = ?",  # noqa: S608
                (job_id,),
            ).fetchone()
        return _row_to_job(row) if row else None

    def get_by_url(self, url: str) -> Job | None:
        """Returns the job stored for a URL, or None."""
        with self._connection("get job by url") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM downloads WHERE url = ?",  # noqa: S608
                (url,),
            ).fetchone()
        return _row_to_job(row) if row else None

    def update(self, job: Job) -> None:
        """Replaces all mutable fields of a stored job."""
        if job.id is None:
            raise StorageError(
                f"Cannot update a job that was never inserted: {job.url}"
            )

        with self._connection(f"update job {job.id}") as conn:
            conn.execute(
                "UPDATE downloads SET downloadedAt = ?, priority = ?, status = ?,"
                " title = ?, errorMessage = ? WHERE id = ?",
                (
                    _format_ts(job.downloaded_at),
                    Priority(job.priority).value,
                    JobStatus(job.status).value,
                    job.title,
                    job.error_message,
                    job.id,
                ),
            )

    def record_outcome(self, job: Job) -> None:
        """
        Persists only the status and outcome fields of a job after a run.

        Priority and title are left alone, so edits made while the command
        was running survive.
        """
        if job.id is None:
            raise StorageError(
                f"Cannot record the outcome of a job that was never inserted: {job.url}"
            )

        with self._connection(f"record outcome of job {job.id}") as conn:
            conn.execute(
                "UPDATE downloads SET status = ?, downloadedAt = ?, errorMessage = ?"
                " WHERE id = ?",
                (
                    JobStatus(job.status).value,
                    _format_ts(job.downloaded_at),
                    job.error_message,
                    job.id,
                ),
            )

    def delete(self, job_id: int) -> bool:
        """Removes a job. Deleting a missing id is not an error."""
        with self._connection(f"delete job {job_id}") as conn:
            cursor = conn.execute("DELETE FROM downloads WHERE id = ?", (job_id,))
        return cursor.rowcount > 0

    def set_priority(self, job_id: int, priority: Priority) -> bool:
        """Changes a job's priority. Returns False if the job does not exist."""
        with self._connection(f"set priority of job {job_id}") as conn:
            cursor = conn.execute(
                "UPDATE downloads SET priority = ? WHERE id = ?",
                (Priority(priority).value, job_id),
            )
        return cursor.rowcount > 0

    # --- Queries ---

    def _filters(
        self, status: JobStatus | str | None, search: str
    ) -> tuple[str, list]:
        conditions = []
        params: list = []
        if status:
            conditions.append("status = ?")
            params.append(JobStatus(status).value)
        if search:
            conditions.append("(title LIKE ? OR url LIKE ? OR collection LIKE ?)")
            like = f"%{search}%"
            params.extend([like, like, like])
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    def list_by_status(
        self,
        status: JobStatus | str | None = None,
        limit: int = 0,
        offset: int = 0,
        search: str = "",
    ) -> list[Job]:
        """
        Lists jobs ordered by priority (high first), then newest first.

        Args:
            status: Only return jobs in this status. None or "" returns all.
            limit: Maximum number of jobs; zero or less means unbounded.
            offset: Number of jobs to skip, for paging.
            search: Case-insensitive substring matched against title, URL
                and collection.
        """
        where, params = self._filters(status, search)
        query = (
            f"SELECT {_COLUMNS} FROM downloads{where}"  # noqa: S608
            f" ORDER BY {_PRIORITY_ORDER}"
        )
        if limit > 0:
            query += " LIMIT ?"
            params.append(limit)
            if offset > 0:
                query += " OFFSET ?"
                params.append(offset)
        elif offset > 0:
            query += " LIMIT -1 OFFSET ?"
            params.append(offset)

        with self._connection("list jobs") as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_job(row) for row in rows]

    def count_filtered(
        self, status: JobStatus | str | None = None, search: str = ""
    ) -> int:
        """Counts jobs matching the same filters as list_by_status."""
        where, params = self._filters(status, search)
        with self._connection("count jobs") as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM downloads{where}",  # noqa: S608
                params,
            ).fetchone()
        return row[0]

    def count_by_status(self) -> list[StatusCount]:
        """Returns the number of jobs in every status, zero-filled."""
        with self._connection("count jobs by status") as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) FROM downloads GROUP BY status"
            ).fetchall()
        counts = {row[0]: row[1] for row in rows}
        return [
            StatusCount(status, counts.get(status.value, 0)) for status in JobStatus
        ]

    # --- Conditional transitions ---

    def conditional_transition(
        self,
        job_id: int,
        from_status: JobStatus,
        to_status: JobStatus,
        clear: Iterable[str] = (),
    ) -> bool:
        """
        Moves a job to `to_status` only if it is currently in `from_status`.

        The check and the write are a single UPDATE statement, so of two
        concurrent callers at most one sees True.

        Args:
            clear: Nullable fields to reset in the same statement, any of
                "error_message" and "downloaded_at".
        """
        assignments = ["status = ?"]
        for field_name in clear:
            if field_name not in _CLEARABLE:
                raise ValueError(f"Field '{field_name}' cannot be cleared.")
            assignments.append(f"{_CLEARABLE[field_name]} = NULL")

        with self._connection(f"transition job {job_id}") as conn:
            cursor = conn.execute(
                f"UPDATE downloads SET {', '.join(assignments)}"  # noqa: S608
                " WHERE id = ? AND status = ?",
                (JobStatus(to_status).value, job_id, JobStatus(from_status).value),
            )
        matched = cursor.rowcount > 0
        self.logger.debug(
            "job_transition",
            job_id=job_id,
            from_status=JobStatus(from_status).value,
            to_status=JobStatus(to_status).value,
            matched=matched,
        )
        return matched

    def claim(self, job_id: int) -> bool:
        """Takes a pending job for execution by moving it to downloading."""
        return self.conditional_transition(
            job_id,
            JobStatus.PENDING,
            JobStatus.DOWNLOADING,
            clear=("error_message", "downloaded_at"),
        )

    def retry(self, job_id: int) -> bool:
        """Requeues a failed job."""
        return self.conditional_transition(
            job_id, JobStatus.ERROR, JobStatus.PENDING, clear=("error_message",)
        )

    def reset(self, job_id: int) -> bool:
        """Requeues a job stuck in downloading, e.g. after a crash."""
        return self.conditional_transition(
            job_id,
            JobStatus.DOWNLOADING,
            JobStatus.PENDING,
            clear=("error_message", "downloaded_at"),
        )

    def redownload(self, job_id: int) -> bool:
        """Requeues a successfully downloaded job."""
        return self.conditional_transition(
            job_id, JobStatus.SUCCESS, JobStatus.PENDING, clear=("downloaded_at",)
        )

    # --- Bulk operations ---

    def _transition_all(
        self, from_status: JobStatus, to_status: JobStatus, clear: Iterable[str]
    ) -> int:
        assignments = ["status = ?"] + [f"{_CLEARABLE[name]} = NULL" for name in clear]
        with self._connection(f"move {from_status.value} jobs") as conn:
            cursor = conn.execute(
                f"UPDATE downloads SET {', '.join(assignments)}"  # noqa: S608
                " WHERE status = ?",
                (to_status.value, from_status.value),
            )
        return cursor.rowcount

    def retry_all_failed(self) -> int:
        """Requeues every failed job and returns how many were affected."""
        return self._transition_all(
            JobStatus.ERROR, JobStatus.PENDING, ("error_message",)
        )

    def reset_all_downloading(self) -> int:
        """Requeues every job stuck in downloading."""
        return self._transition_all(
            JobStatus.DOWNLOADING,
            JobStatus.PENDING,
            ("error_message", "downloaded_at"),
        )

    def delete_by_status(self, status: JobStatus) -> int:
        """Deletes every job in a status and returns how many were removed."""
        with self._connection(f"delete {JobStatus(status).value} jobs") as conn:
            cursor = conn.execute(
                "DELETE FROM downloads WHERE status = ?", (JobStatus(status).value,)
            )
        return cursor.rowcount

    def delete_all_failed(self) -> int:
        return self.delete_by_status(JobStatus.ERROR)

    # --- Maintenance ---

    def vacuum(self) -> None:
        """Optimizes the database file by rebuilding it."""
        conn = None
        try:
            # VACUUM cannot run inside a transaction.
            conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
            conn.execute("VACUUM;")
            conn.execute("ANALYZE;")
        except sqlite3.Error as e:
            raise StorageError(f"Database vacuum failed: {e}") from e
        finally:
            if conn is not None:
                conn.close()
        self.logger.info("db_vacuumed", path=str(self.db_path))
