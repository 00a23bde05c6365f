from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from focusflow.errors import TransferError
from focusflow.upload import orchestrator as orchestrator_module
from focusflow.upload import storage as storage_module
from focusflow.upload.orchestrator import ProgressTracker, UploadOrchestrator, _unique_object_paths
from focusflow.upload.storage import (
    LocalResumableStorage,
    ProgressCallback,
    UploadProgress,
    build_object_path,
)
from focusflow.upload.strategy import UploadStrategy

from conftest import doc


class ScriptedStorage:
    """Storage whose ``failing`` file errors while the others hang until cancelled."""

    def __init__(self, failing: str, error: Exception) -> None:
        self.failing = failing
        self.error = error
        self.cancelled: list[str] = []

    async def upload(
        self,
        file,
        object_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        if file.name == self.failing:
            await asyncio.sleep(0)
            raise self.error
        if on_progress is not None:
            on_progress(UploadProgress.of(1, 2))
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled.append(file.name)
            raise
        return object_path

    def read(self, path: str) -> bytes:
        raise AssertionError("not used")


def test_inline_batches_pass_through() -> None:
    files = [doc("a.pdf"), doc("b.pdf")]
    orchestrator = UploadOrchestrator()

    outcome = asyncio.run(orchestrator.run(files, UploadStrategy.INLINE, owner="u1"))

    assert outcome.strategy is UploadStrategy.INLINE
    assert outcome.files == files
    assert outcome.paths == []


def test_resumable_without_storage_is_a_transfer_error() -> None:
    orchestrator = UploadOrchestrator()

    with pytest.raises(TransferError):
        asyncio.run(orchestrator.run([doc("a.pdf")], UploadStrategy.RESUMABLE, owner="u1"))


def test_resumable_upload_stores_every_file(tmp_path, write_document) -> None:
    first = write_document("report.pdf", b"0123456789")
    second = write_document("notes.txt", b"abcd")
    seen: list[tuple[str, int]] = []
    tracker = ProgressTracker(lambda name, progress: seen.append((name, progress.percentage)))
    storage = LocalResumableStorage(tmp_path / "store", chunk_size=4)
    orchestrator = UploadOrchestrator(storage, tracker=tracker)

    outcome = asyncio.run(orchestrator.run([first, second], UploadStrategy.RESUMABLE, owner="u1"))

    assert outcome.files == []
    assert len(outcome.paths) == 2
    assert all(path.startswith("u1/") for path in outcome.paths)
    assert outcome.paths[0].endswith("_report.pdf")
    assert storage.read(outcome.paths[0]) == b"0123456789"
    assert storage.read(outcome.paths[1]) == b"abcd"
    assert [pct for name, pct in seen if name == "report.pdf"] == [40, 80, 100]
    assert ("notes.txt", 100) in seen
    assert len(tracker) == 0


def test_first_failure_cancels_remaining_uploads() -> None:
    storage = ScriptedStorage("b.pdf", TransferError("boom", file_name="b.pdf"))
    orchestrator = UploadOrchestrator(storage)
    files = [doc("a.pdf"), doc("b.pdf"), doc("c.pdf")]

    with pytest.raises(TransferError) as excinfo:
        asyncio.run(orchestrator.run(files, UploadStrategy.RESUMABLE, owner="u1"))

    assert excinfo.value.file_name == "b.pdf"
    assert sorted(storage.cancelled) == ["a.pdf", "c.pdf"]
    assert orchestrator.tracker.snapshot() == {}


def test_unexpected_errors_are_wrapped() -> None:
    storage = ScriptedStorage("a.pdf", OSError("disk full"))
    orchestrator = UploadOrchestrator(storage)

    with pytest.raises(TransferError, match="Failed to upload a.pdf: disk full") as excinfo:
        asyncio.run(orchestrator.run([doc("a.pdf"), doc("b.pdf")], UploadStrategy.RESUMABLE, owner="u1"))

    assert excinfo.value.file_name == "a.pdf"


def test_same_named_files_get_distinct_paths(tmp_path, write_document) -> None:
    original = write_document("a.pdf", b"one")
    storage = LocalResumableStorage(tmp_path / "store")
    orchestrator = UploadOrchestrator(storage)

    outcome = asyncio.run(
        orchestrator.run([original, original], UploadStrategy.RESUMABLE, owner="u1")
    )

    assert len(set(outcome.paths)) == 2


def test_path_suffixes_skip_names_already_taken(monkeypatch) -> None:
    monkeypatch.setattr(
        orchestrator_module, "build_object_path", lambda owner, name: f"{owner}/1_{name}"
    )

    paths = _unique_object_paths([doc("a-2.pdf"), doc("a.pdf"), doc("a.pdf")], "u1")

    assert paths == ["u1/1_a-2.pdf", "u1/1_a.pdf", "u1/1_a-3.pdf"]


def test_injected_tracker_is_used_even_when_empty(tmp_path, write_document) -> None:
    report = write_document("report.pdf", b"0123")
    seen: list[str] = []
    tracker = ProgressTracker(lambda name, progress: seen.append(name))
    assert len(tracker) == 0
    orchestrator = UploadOrchestrator(LocalResumableStorage(tmp_path / "store"), tracker=tracker)

    assert orchestrator.tracker is tracker
    asyncio.run(orchestrator.run([report], UploadStrategy.RESUMABLE, owner="u1"))

    assert seen == ["report.pdf"]


def test_chunk_io_runs_in_worker_threads(monkeypatch, tmp_path, write_document) -> None:
    report = write_document("report.pdf", b"0123456789")
    offloaded: list[str] = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, /, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(storage_module.asyncio, "to_thread", recording_to_thread)
    storage = LocalResumableStorage(tmp_path / "store", chunk_size=4)

    asyncio.run(storage.upload(report, "u1/report.pdf"))

    assert offloaded.count("write") == 3
    assert offloaded.count("read") == 4
    assert storage.read("u1/report.pdf") == b"0123456789"


def test_missing_source_file_is_a_transfer_error(tmp_path) -> None:
    storage = LocalResumableStorage(tmp_path / "store")

    with pytest.raises(TransferError):
        asyncio.run(storage.upload(doc("ghost.pdf"), "u1/ghost.pdf"))


def test_reading_a_missing_object_is_a_transfer_error(tmp_path) -> None:
    storage = LocalResumableStorage(tmp_path / "store")

    with pytest.raises(TransferError) as excinfo:
        storage.read("u1/1_gone.pdf")

    assert excinfo.value.file_name == "1_gone.pdf"


def test_storage_rejects_paths_outside_its_root(tmp_path) -> None:
    storage = LocalResumableStorage(tmp_path / "store")

    with pytest.raises(TransferError):
        storage.read("../outside.txt")


def test_object_paths_are_sanitised() -> None:
    assert (
        build_object_path("u1", "my report (v2).pdf", timestamp_ms=123)
        == "u1/123_my_report__v2_.pdf"
    )
    assert build_object_path("u1", "Makefile", timestamp_ms=5) == "u1/5_Makefile.bin"


def test_progress_for_empty_totals_is_complete() -> None:
    assert UploadProgress.of(0, 0).percentage == 100
    assert UploadProgress.of(1, 3).percentage == 33
