"""Quota checks for a batch of newly dropped documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .media import format_file_size, guess_content_type
from .quota import QuotaPolicy

__all__ = ["DocumentFile", "IngestionResult", "validate_ingestion"]


@dataclass(frozen=True, slots=True)
class DocumentFile:
    """Reference document selected for plan generation."""

    name: str
    size: int
    content_type: str = ""
    path: Optional[Path] = None

    @classmethod
    def from_path(cls, path: Path | str, content_type: str | None = None) -> "DocumentFile":
        """Describe a file on disk, guessing its content type from the name."""
        resolved = Path(path)
        return cls(
            name=resolved.name,
            size=resolved.stat().st_size,
            content_type=content_type or guess_content_type(resolved.name),
            path=resolved,
        )

    def read_bytes(self) -> bytes:
        """Return the document contents."""
        if self.path is None:
            raise FileNotFoundError(f"Document {self.name!r} has no content handle.")
        return self.path.read_bytes()


@dataclass(slots=True)
class IngestionResult:
    """Files that may join the selection plus every violation found."""

    accepted: list[DocumentFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def validate_ingestion(
    selected: Sequence[DocumentFile],
    candidates: Sequence[DocumentFile],
    rejected: Sequence[DocumentFile],
    policy: QuotaPolicy,
) -> IngestionResult:
    """Check ``candidates`` against ``policy`` given the current ``selected`` files.

    All violations are collected. The file-count limit rejects the whole batch;
    the size and duplicate checks reject individual files and let the rest through.
    """
    result = IngestionResult()

    if rejected:
        names = ", ".join(item.name for item in rejected)
        result.errors.append(
            f"Unsupported file type for: {names}. "
            "Use PDF, Word, PowerPoint, text, Markdown, image, audio or video files."
        )

    if len(selected) + len(candidates) > policy.max_file_count_total:
        result.errors.append(
            f"Maximum {policy.max_file_count_total} files allowed: "
            f"{len(selected)} already selected, {len(candidates)} more dropped."
        )
        return result

    running_total = sum(item.size for item in selected)
    seen = {(item.name, item.size) for item in selected}
    individual_limit = format_file_size(policy.max_individual_bytes)
    total_limit = format_file_size(policy.max_total_bytes)

    for candidate in candidates:
        size_label = format_file_size(candidate.size)
        if candidate.size > policy.max_individual_bytes:
            result.errors.append(
                f'"{candidate.name}" ({size_label}) exceeds the {individual_limit} limit per file.'
            )
            continue
        if running_total + candidate.size > policy.max_total_bytes:
            result.errors.append(
                f'"{candidate.name}" ({size_label}) would exceed the {total_limit} total upload limit.'
            )
            continue
        if (candidate.name, candidate.size) in seen:
            result.errors.append(f'"{candidate.name}" is already selected.')
            continue
        result.accepted.append(candidate)
        seen.add((candidate.name, candidate.size))
        running_total += candidate.size

    return result
