"""Quota policy and document ingestion checks."""

from .media import effective_mime_type, format_file_size, partition_by_media_type
from .quota import INLINE_CEILING_BYTES, QuotaPolicy, QuotaTier, policy_for
from .validator import DocumentFile, IngestionResult, validate_ingestion

__all__ = [
    "DocumentFile",
    "INLINE_CEILING_BYTES",
    "IngestionResult",
    "QuotaPolicy",
    "QuotaTier",
    "effective_mime_type",
    "format_file_size",
    "partition_by_media_type",
    "policy_for",
    "validate_ingestion",
]
