"""Per-tier upload limits."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "INLINE_CEILING_BYTES",
    "MEGABYTE",
    "QuotaPolicy",
    "QuotaTier",
    "policy_for",
]

MEGABYTE = 1024 * 1024

# Payload ceiling of the generation endpoint, independent of any quota.
INLINE_CEILING_BYTES = int(9.5 * MEGABYTE)


class QuotaTier(str, Enum):
    """Subscription levels recognised by the ingestion pipeline."""

    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(frozen=True, slots=True)
class QuotaPolicy:
    """Hard limits applied to a document selection."""

    max_file_count_total: int
    max_individual_bytes: int
    max_total_bytes: int


_POLICIES: dict[QuotaTier, QuotaPolicy] = {
    QuotaTier.STANDARD: QuotaPolicy(
        max_file_count_total=10,
        max_individual_bytes=INLINE_CEILING_BYTES,
        max_total_bytes=INLINE_CEILING_BYTES,
    ),
    QuotaTier.PREMIUM: QuotaPolicy(
        max_file_count_total=20,
        max_individual_bytes=500 * MEGABYTE,
        max_total_bytes=500 * MEGABYTE,
    ),
}


def policy_for(tier: QuotaTier | str) -> QuotaPolicy:
    """Return the limits for ``tier``."""
    return _POLICIES[QuotaTier(tier)]
