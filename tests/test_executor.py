import asyncio

import pytest
from conftest import add_job, make_collection

from dlm.core.executor import (
    DOWNLOAD_LOG_NAME,
    CommandExecutor,
    RunOutcome,
    build_command,
)
from dlm.exceptions import DirectoryError, StorageError
from dlm.models.job import JobStatus, Priority
from dlm.storage.job_store import JobStore


@pytest.fixture
def executor(store, logger):
    return CommandExecutor(store, logger)


def test_build_command_substitutes_every_placeholder():
    command_line, argv = build_command("tool --url % --ref %", "https://x/1")

    assert command_line == "tool --url https://x/1 --ref https://x/1"
    assert argv == ["tool", "--url", "https://x/1", "--ref", "https://x/1"]


def test_build_command_passes_quotes_through_literally():
    _, argv = build_command("echo 'a b' %", "u")
    assert argv == ["echo", "'a", "b'", "u"]


def test_successful_command(store, executor, out_dir):
    job = add_job(store, "https://x.com/a")
    collection = make_collection("test", ["x.com"], out_dir, "echo %")

    result = asyncio.run(executor.run(job, collection))

    assert result.outcome is RunOutcome.SUCCESS
    assert result.returncode == 0
    stored = store.get(job.id)
    assert stored.status is JobStatus.SUCCESS
    assert stored.downloaded_at is not None
    assert stored.error_message is None

    log_text = (out_dir / DOWNLOAD_LOG_NAME).read_text()
    assert f"=== Download {job.id} - " in log_text
    assert "URL: https://x.com/a" in log_text
    assert "Command: echo https://x.com/a" in log_text
    assert "--- OUTPUT ---\nhttps://x.com/a\n" in log_text
    assert "--- END ---" in log_text


def test_command_runs_inside_the_collection_directory(store, executor, out_dir):
    job = add_job(store, "https://x.com/a")
    collection = make_collection("test", ["x.com"], out_dir, "touch marker %")

    result = asyncio.run(executor.run(job, collection))

    # touch also fails on the URL path, but the marker lands in the directory
    assert (out_dir / "marker").exists()
    assert result.outcome in (RunOutcome.SUCCESS, RunOutcome.ERROR)


def test_failing_command_without_output(store, executor, out_dir):
    job = add_job(store, "https://x.com/a")
    collection = make_collection("test", ["x.com"], out_dir, "false %")

    result = asyncio.run(executor.run(job, collection))

    assert result.outcome is RunOutcome.ERROR
    stored = store.get(job.id)
    assert stored.status is JobStatus.ERROR
    assert stored.error_message == "exit status 1"
    assert stored.downloaded_at is None

    assert store.retry(job.id) is True
    retried = store.get(job.id)
    assert retried.status is JobStatus.PENDING
    assert retried.error_message is None


def test_failing_command_keeps_its_output_as_the_error(store, executor, out_dir):
    job = add_job(store, "https://x.com/missing-file")
    collection = make_collection("test", ["x.com"], out_dir, "ls %")

    asyncio.run(executor.run(job, collection))

    stored = store.get(job.id)
    assert stored.status is JobStatus.ERROR
    assert "https://x.com/missing-file" in stored.error_message


def test_missing_program_is_a_job_error(store, executor, out_dir):
    job = add_job(store, "https://x.com/a")
    collection = make_collection(
        "test", ["x.com"], out_dir, "dlm-no-such-program-xyz %"
    )

    result = asyncio.run(executor.run(job, collection))

    assert result.outcome is RunOutcome.ERROR
    assert result.returncode is None
    stored = store.get(job.id)
    assert stored.status is JobStatus.ERROR
    assert "dlm-no-such-program-xyz" in stored.error_message
    assert (out_dir / DOWNLOAD_LOG_NAME).exists()


def test_job_that_is_not_pending_is_skipped(store, executor, out_dir):
    job = add_job(store, "https://x.com/a")
    store.claim(job.id)
    collection = make_collection("test", ["x.com"], out_dir, "echo %")

    result = asyncio.run(executor.run(job, collection))

    assert result.outcome is RunOutcome.SKIPPED
    assert store.get(job.id).status is JobStatus.DOWNLOADING
    assert not (out_dir / DOWNLOAD_LOG_NAME).exists()


def test_unusable_directory_leaves_the_job_pending(store, executor, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    job = add_job(store, "https://x.com/a")
    collection = make_collection("test", ["x.com"], blocker / "sub", "echo %")

    with pytest.raises(DirectoryError):
        asyncio.run(executor.run(job, collection))

    assert store.get(job.id).status is JobStatus.PENDING


def test_log_entries_are_appended(store, executor, out_dir):
    collection = make_collection("test", ["x.com"], out_dir, "echo %")
    for url in ("https://x.com/1", "https://x.com/2"):
        asyncio.run(executor.run(add_job(store, url), collection))

    log_text = (out_dir / DOWNLOAD_LOG_NAME).read_text()
    assert log_text.count("--- END ---") == 2
    assert log_text.index("https://x.com/1") < log_text.index("https://x.com/2")


def test_nul_byte_in_url_is_a_start_failure(store, executor, out_dir):
    job = add_job(store, "https://x.com/a\x00b")
    collection = make_collection("test", ["x.com"], out_dir, "echo %")

    result = asyncio.run(executor.run(job, collection))

    assert result.outcome is RunOutcome.ERROR
    stored = store.get(job.id)
    assert stored.status is JobStatus.ERROR
    assert stored.error_message.startswith("failed to start 'echo'")


def test_priority_change_during_run_is_kept(store, executor, out_dir):
    snapshot = add_job(store, "https://x.com/a")
    store.set_priority(snapshot.id, Priority.HIGH)
    collection = make_collection("test", ["x.com"], out_dir, "echo %")

    asyncio.run(executor.run(snapshot, collection))

    stored = store.get(snapshot.id)
    assert stored.status is JobStatus.SUCCESS
    assert stored.priority is Priority.HIGH


class BrokenOutcomeStore(JobStore):
    def record_outcome(self, job):
        raise StorageError("database is locked")


def test_failed_final_write_propagates_and_leaves_job_downloading(
    tmp_path, logger, out_dir
):
    store = BrokenOutcomeStore(tmp_path / "dlm.db", logger=logger)
    job = add_job(store, "https://x.com/a")
    collection = make_collection("test", ["x.com"], out_dir, "echo %")

    with pytest.raises(StorageError, match="locked"):
        asyncio.run(CommandExecutor(store, logger).run(job, collection))

    assert store.get(job.id).status is JobStatus.DOWNLOADING
