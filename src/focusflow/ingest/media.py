"""Media-type filtering for dropped documents."""

from __future__ import annotations

import math
import mimetypes
from typing import Iterable, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .validator import DocumentFile

__all__ = [
    "ACCEPTED_MEDIA_TYPES",
    "effective_mime_type",
    "format_file_size",
    "guess_content_type",
    "is_accepted_media_type",
    "partition_by_media_type",
]

ACCEPTED_MEDIA_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/markdown",
        "image/jpeg",
        "image/png",
        "image/webp",
        "audio/mpeg",
        "audio/wav",
        "audio/x-wav",
        "video/mp4",
    }
)

_MARKDOWN_SUFFIXES = (".md", ".markdown")
_FALLBACK_TYPE = "application/octet-stream"


def guess_content_type(name: str) -> str:
    """Guess a content type from ``name``, treating markdown explicitly."""
    if name.lower().endswith(_MARKDOWN_SUFFIXES):
        return "text/markdown"
    guessed, _ = mimetypes.guess_type(name)
    return guessed or _FALLBACK_TYPE


def effective_mime_type(content_type: str | None, name: str) -> str:
    """Return the MIME type sent to the oracle; markdown travels as plain text."""
    if content_type == "text/markdown" or name.lower().endswith(_MARKDOWN_SUFFIXES):
        return "text/plain"
    return content_type or _FALLBACK_TYPE


def is_accepted_media_type(content_type: str | None, name: str) -> bool:
    """Return True when the document, image, audio or video type is supported."""
    resolved = content_type or guess_content_type(name)
    return resolved in ACCEPTED_MEDIA_TYPES


def partition_by_media_type(
    files: Iterable["DocumentFile"],
) -> tuple[list["DocumentFile"], list["DocumentFile"]]:
    """Split ``files`` into accepted and type-rejected lists, preserving order."""
    accepted: list["DocumentFile"] = []
    rejected: list["DocumentFile"] = []
    for item in files:
        if is_accepted_media_type(item.content_type, item.name):
            accepted.append(item)
        else:
            rejected.append(item)
    return accepted, rejected


def format_file_size(size: int) -> str:
    """Render ``size`` bytes using binary units (``9.5 MB``)."""
    if size <= 0:
        return "0 Bytes"
    units: Sequence[str] = ("Bytes", "KB", "MB", "GB")
    exponent = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024**exponent), 2)
    rendered = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{rendered} {units[exponent]}"
