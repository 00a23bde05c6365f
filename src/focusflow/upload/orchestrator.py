"""Execute the chosen transfer strategy for a generation request."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

from ..errors import TransferError
from ..ingest.validator import DocumentFile
from .storage import StorageBackend, UploadProgress, build_object_path
from .strategy import UploadStrategy

__all__ = ["ProgressListener", "ProgressTracker", "UploadOrchestrator", "UploadOutcome"]

LOGGER = logging.getLogger(__name__)

ProgressListener = Callable[[str, UploadProgress], None]


class ProgressTracker:
    """Live per-file progress for the batch currently in flight."""

    def __init__(self, listener: Optional[ProgressListener] = None) -> None:
        self._progress: Dict[str, UploadProgress] = {}
        self._listener = listener

    def update(self, file_name: str, progress: UploadProgress) -> None:
        self._progress[file_name] = progress
        if self._listener is not None:
            self._listener(file_name, progress)

    def get(self, file_name: str) -> Optional[UploadProgress]:
        return self._progress.get(file_name)

    def snapshot(self) -> Dict[str, UploadProgress]:
        """Return a copy of the current progress map."""
        return dict(self._progress)

    def clear(self) -> None:
        self._progress.clear()

    def __len__(self) -> int:
        return len(self._progress)


@dataclass(slots=True)
class UploadOutcome:
    """Transfer result: raw files for inline requests or storage paths otherwise."""

    strategy: UploadStrategy
    files: list[DocumentFile] = field(default_factory=list)
    paths: list[str] = field(default_factory=list)


class UploadOrchestrator:
    """Fan out resumable uploads and join them all-or-nothing."""

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        *,
        tracker: Optional[ProgressTracker] = None,
    ) -> None:
        self._storage = storage
        self._tracker = tracker if tracker is not None else ProgressTracker()

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    async def run(
        self,
        files: Sequence[DocumentFile],
        strategy: UploadStrategy,
        *,
        owner: str,
    ) -> UploadOutcome:
        """Transfer ``files`` using ``strategy``.

        Inline batches pass through untouched. Resumable batches upload every file
        concurrently; the first failure cancels the remaining uploads and raises
        :class:`TransferError`. Progress is cleared whichever way the batch ends.
        """
        self._tracker.clear()
        if strategy is UploadStrategy.INLINE or not files:
            return UploadOutcome(strategy=strategy, files=list(files))
        if self._storage is None:
            raise TransferError("Resumable transfer requested but no storage backend is configured.")

        LOGGER.info("Uploading %d file(s) via resumable transfer", len(files))
        try:
            paths = await self._upload_all(files, owner)
        finally:
            self._tracker.clear()
        LOGGER.info("Resumable transfer finished for %d file(s)", len(paths))
        return UploadOutcome(strategy=strategy, paths=paths)

    async def _upload_all(self, files: Sequence[DocumentFile], owner: str) -> list[str]:
        object_paths = _unique_object_paths(files, owner)
        tasks = [
            asyncio.create_task(self._upload_one(item, object_path))
            for item, object_path in zip(files, object_paths)
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

        failed = [task for task in tasks if task in done and task.exception() is not None]
        if not failed:
            return [task.result() for task in tasks]

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        error = failed[0].exception()
        if isinstance(error, TransferError):
            raise error
        file_name = files[tasks.index(failed[0])].name
        raise TransferError(f"Failed to upload {file_name}: {error}", file_name=file_name) from error

    async def _upload_one(self, file: DocumentFile, object_path: str) -> str:
        assert self._storage is not None

        def _on_progress(progress: UploadProgress) -> None:
            self._tracker.update(file.name, progress)
            LOGGER.debug("Upload progress for %s: %d%%", file.name, progress.percentage)

        return await self._storage.upload(file, object_path, _on_progress)


def _unique_object_paths(files: Sequence[DocumentFile], owner: str) -> list[str]:
    """Derive one object path per file; same-named files get an index suffix."""
    paths: list[str] = []
    seen: set[str] = set()
    for index, item in enumerate(files):
        base = build_object_path(owner, item.name)
        head, dot, extension = base.rpartition(".")
        path = base
        suffix = index
        while path in seen:
            path = f"{head}-{suffix}{dot}{extension}"
            suffix += 1
        seen.add(path)
        paths.append(path)
    return paths
