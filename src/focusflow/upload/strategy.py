"""Choose between inline and resumable transfer for a document batch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ..ingest.quota import INLINE_CEILING_BYTES, QuotaTier
from ..ingest.validator import DocumentFile

__all__ = [
    "FAN_OUT_THRESHOLD",
    "UploadDescriptor",
    "UploadStrategy",
    "describe_uploads",
    "select_strategy",
]

LOGGER = logging.getLogger(__name__)

FAN_OUT_THRESHOLD = 5


class UploadStrategy(str, Enum):
    """Transfer modes supported by the generation endpoint."""

    INLINE = "inline"
    RESUMABLE = "resumable"


@dataclass(frozen=True, slots=True)
class UploadDescriptor:
    """One file of a generation request together with its transfer mode."""

    file: DocumentFile
    quota_tier: QuotaTier
    strategy: UploadStrategy


def select_strategy(
    tier: QuotaTier | str,
    files: Sequence[DocumentFile],
    *,
    inline_ceiling: int = INLINE_CEILING_BYTES,
    fan_out_threshold: int = FAN_OUT_THRESHOLD,
) -> UploadStrategy:
    """Return the transfer mode for the whole batch.

    Standard batches always travel inline because their quota already caps them
    below the inline ceiling. Premium batches switch to resumable transfer when
    any file is over the ceiling or the batch is larger than the fan-out threshold.
    """
    if QuotaTier(tier) is not QuotaTier.PREMIUM or not files:
        return UploadStrategy.INLINE
    has_large_files = any(item.size > inline_ceiling for item in files)
    if has_large_files or len(files) > fan_out_threshold:
        LOGGER.debug(
            "Premium batch of %d file(s) uses resumable transfer (large files: %s)",
            len(files),
            has_large_files,
        )
        return UploadStrategy.RESUMABLE
    return UploadStrategy.INLINE


def describe_uploads(
    tier: QuotaTier | str,
    files: Sequence[DocumentFile],
    **options: int,
) -> list[UploadDescriptor]:
    """Build per-file descriptors that share the batch strategy."""
    resolved_tier = QuotaTier(tier)
    strategy = select_strategy(resolved_tier, files, **options)
    return [UploadDescriptor(file=item, quota_tier=resolved_tier, strategy=strategy) for item in files]
