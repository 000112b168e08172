"""
Event logging for the job store, executor, processor and scheduler.

Each event is a short snake_case name plus key/value context. Events go to
the standard `logging` tree as `[event] key=value` lines and, when a log
directory is configured, to a JSON Lines file with one object per event.

Components never reach for a process-wide logger; a StructuredLogger is
constructed by the caller and handed to each of them.
"""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import IO, Any

_RESERVED_KEYS = ("event", "level", "timestamp", "run_id")


class StructuredLogger:
    """
    Writes job and scheduler events as console lines and optional JSONL.

    Usage:
        logger = StructuredLogger("dlm", log_dir=Path("logs"), enable_json=True)
        logger.info("job_succeeded", job_id=12, url="https://example.com/file")
        logger.close()
    """

    def __init__(
        self,
        name: str = "dlm",
        log_dir: Path | None = None,
        enable_json: bool = False,
        enable_console: bool = True,
    ):
        self.name = name
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.enable_json = enable_json and self.log_dir is not None
        self.enable_console = enable_console
        self.run_id = f"{datetime.now():%Y%m%d%H%M%S}-{os.getpid()}"

        self._logger = logging.getLogger(name)
        self._json_file: IO[str] | None = None
        if self.enable_json:
            self._json_file = self._open_json_file()

    def _open_json_file(self) -> IO[str]:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        path = self.log_dir / f"dlm_{datetime.now():%Y%m%d_%H%M%S}.jsonl"
        return open(path, "a", encoding="utf-8")  # noqa: SIM115

    @staticmethod
    def _format_message(event: str, context: dict[str, Any]) -> str:
        fields = " ".join(
            f"{key}={value}" for key, value in context.items() if value is not None
        )
        return f"[{event}] {fields}" if fields else f"[{event}]"

    def _write_json(self, level: str, event: str, context: dict[str, Any]) -> None:
        if self._json_file is None or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "level": level,
            "event": event,
            "run_id": self.run_id,
        }
        entry.update(
            (key, value) for key, value in context.items() if key not in _RESERVED_KEYS
        )

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"dlm: could not write JSON log entry: {e}", file=sys.stderr)

    def _log(self, level: int, event: str, **context) -> None:
        if self.enable_console and self._logger.isEnabledFor(level):
            self._logger.log(level, self._format_message(event, context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, context)

    def debug(self, event: str, **context) -> None:
        self._log(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._log(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._log(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._log(logging.ERROR, event, **context)

    def close(self) -> None:
        """Closes the JSON log file, if one is open."""
        if self._json_file is not None and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


class JobLogger:
    """Specialized logger for job lifecycle events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def job_added(self, job_id: int, url: str, collection: str, title: str | None):
        self.logger.info(
            "job_added", job_id=job_id, url=url, collection=collection, title=title
        )

    def job_duplicate(self, url: str):
        self.logger.info("job_duplicate", url=url, reason="already present")

    def job_unmatched(self, url: str):
        self.logger.warning(
            "job_unmatched", url=url, reason="no collection matches this URL"
        )

    def job_started(self, job_id: int, url: str, command: str):
        self.logger.info("job_started", job_id=job_id, url=url, command=command)

    def job_succeeded(self, job_id: int, url: str, duration_s: float):
        self.logger.info(
            "job_succeeded", job_id=job_id, url=url, duration_s=round(duration_s, 2)
        )

    def job_failed(self, job_id: int, url: str, error: str):
        self.logger.error("job_failed", job_id=job_id, url=url, error=error)

    def job_skipped(self, job_id: int, url: str, reason: str):
        self.logger.warning("job_skipped", job_id=job_id, url=url, reason=reason)


class DaemonLogger:
    """Specialized logger for scheduler events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def daemon_started(self, interval_s: float, batch_size: int):
        self.logger.info(
            "daemon_started", interval_s=interval_s, batch_size=batch_size
        )

    def daemon_stopped(self):
        self.logger.info("daemon_stopped")

    def pass_started(self, limit: int):
        self.logger.info("daemon_pass_started", limit=limit)

    def pass_completed(
        self, processed: int, succeeded: int, failed: int, duration_s: float
    ):
        self.logger.info(
            "daemon_pass_completed",
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            duration_s=round(duration_s, 2),
        )


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> StructuredLogger:
    """Create the application's base structured logger."""
    return StructuredLogger("dlm", log_dir=log_dir, enable_json=enable_json)
