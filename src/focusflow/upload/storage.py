"""Storage collaborators used for resumable document transfer."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..errors import TransferError
from ..ingest.validator import DocumentFile

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "LocalResumableStorage",
    "ProgressCallback",
    "StorageBackend",
    "UploadProgress",
    "build_object_path",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 6 * 1024 * 1024

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(frozen=True, slots=True)
class UploadProgress:
    """Snapshot of a single file transfer."""

    bytes_uploaded: int
    bytes_total: int
    percentage: int

    @classmethod
    def of(cls, bytes_uploaded: int, bytes_total: int) -> "UploadProgress":
        if bytes_total <= 0:
            return cls(bytes_uploaded, bytes_total, 100)
        return cls(bytes_uploaded, bytes_total, round(bytes_uploaded * 100 / bytes_total))


ProgressCallback = Callable[[UploadProgress], None]


class StorageBackend(Protocol):
    """Durable storage that accepts resumable uploads."""

    async def upload(
        self,
        file: DocumentFile,
        object_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Store ``file`` under ``object_path`` and return the durable path."""
        ...

    def read(self, path: str) -> bytes:
        """Return the stored bytes for ``path``."""
        ...


def build_object_path(owner: str, file_name: str, *, timestamp_ms: int | None = None) -> str:
    """Return ``owner/<timestamp>_<sanitised stem>.<ext>`` for ``file_name``."""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    sanitised = _UNSAFE_NAME_CHARS.sub("_", file_name)
    if "." in file_name:
        extension = file_name.rsplit(".", 1)[1]
        stem = sanitised.rsplit(".", 1)[0] or sanitised
    else:
        extension = "bin"
        stem = sanitised
    return f"{owner}/{stamp}_{stem}.{extension}"


class LocalResumableStorage:
    """Chunked upload into a directory tree, mirroring a resumable object store."""

    def __init__(self, root: Path | str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._root = Path(root)
        self._chunk_size = chunk_size

    @property
    def root(self) -> Path:
        return self._root

    async def upload(
        self,
        file: DocumentFile,
        object_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Copy ``file`` chunk by chunk, reporting progress after each chunk."""
        if file.path is None:
            raise TransferError(f"Failed to upload {file.name}: no content handle", file_name=file.name)
        target = self._resolve(object_path)
        total = file.size
        uploaded = 0
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with file.path.open("rb") as source, target.open("wb") as sink:
                while True:
                    chunk = await asyncio.to_thread(source.read, self._chunk_size)
                    if not chunk:
                        break
                    await asyncio.to_thread(sink.write, chunk)
                    uploaded += len(chunk)
                    if on_progress is not None:
                        on_progress(UploadProgress.of(uploaded, total))
        except OSError as error:
            raise TransferError(f"Failed to upload {file.name}: {error}", file_name=file.name) from error
        if uploaded == 0 and on_progress is not None:
            on_progress(UploadProgress.of(0, total))
        LOGGER.debug("Stored %s at %s (%d bytes)", file.name, object_path, uploaded)
        return object_path

    def read(self, path: str) -> bytes:
        """Return the bytes previously stored under ``path``."""
        try:
            return self._resolve(path).read_bytes()
        except OSError as error:
            name = path.rsplit("/", 1)[-1]
            raise TransferError(f"Failed to read stored {name}: {error}", file_name=name) from error

    def _resolve(self, object_path: str) -> Path:
        root = self._root.resolve()
        candidate = (root / object_path).resolve()
        if root != candidate and root not in candidate.parents:
            raise TransferError(f"Object path escapes storage root: {object_path}")
        return candidate
