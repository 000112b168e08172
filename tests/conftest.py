import logging
from pathlib import Path

import pytest

from dlm.core.processor import JobProcessor
from dlm.models.config import Collection
from dlm.models.job import Job, Priority
from dlm.storage.job_store import JobStore
from dlm.utils.structured_logger import StructuredLogger


@pytest.fixture
def logger():
    return StructuredLogger("dlm.tests")


@pytest.fixture
def store(tmp_path: Path, logger) -> JobStore:
    return JobStore(tmp_path / "dlm.db", logger=logger)


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"


def make_collection(name: str, domains: list[str], directory: Path, command: str):
    return Collection(
        name=name, domains=domains, directory=str(directory), command=command
    )


def add_job(
    store: JobStore,
    url: str,
    collection: str = "test",
    priority: Priority = Priority.NORMAL,
) -> Job:
    return store.insert(Job.new(url, collection, priority=priority))


@pytest.fixture
def make_processor(store, logger):
    """Builds a processor over a fixed list of collections, without title lookups."""

    def _make(collections: list[Collection], **kwargs) -> JobProcessor:
        kwargs.setdefault("add_delay", 0)
        kwargs.setdefault("fetch_titles", False)
        return JobProcessor(store, lambda: collections, logger=logger, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def _capture_dlm_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="dlm")
