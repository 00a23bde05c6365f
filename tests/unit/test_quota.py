from __future__ import annotations

import pytest

from focusflow.ingest.media import (
    effective_mime_type,
    format_file_size,
    guess_content_type,
    partition_by_media_type,
)
from focusflow.ingest.quota import INLINE_CEILING_BYTES, MEGABYTE, QuotaTier, policy_for

from conftest import doc


def test_standard_policy_caps_everything_at_the_inline_ceiling() -> None:
    policy = policy_for(QuotaTier.STANDARD)

    assert policy.max_file_count_total == 10
    assert policy.max_individual_bytes == INLINE_CEILING_BYTES
    assert policy.max_total_bytes == INLINE_CEILING_BYTES


def test_premium_policy_is_looked_up_by_name() -> None:
    policy = policy_for("premium")

    assert policy.max_file_count_total == 20
    assert policy.max_individual_bytes == 500 * MEGABYTE
    assert policy.max_total_bytes == 500 * MEGABYTE


def test_unknown_tier_is_rejected() -> None:
    with pytest.raises(ValueError):
        policy_for("enterprise")


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1536, "1.5 KB"),
        (INLINE_CEILING_BYTES, "9.5 MB"),
        (500 * MEGABYTE, "500 MB"),
    ],
)
def test_format_file_size(size: int, expected: str) -> None:
    assert format_file_size(size) == expected


def test_markdown_is_accepted_and_sent_as_plain_text() -> None:
    assert guess_content_type("notes.md") == "text/markdown"
    assert effective_mime_type("text/markdown", "notes.md") == "text/plain"
    assert effective_mime_type("", "README.markdown") == "text/plain"
    assert effective_mime_type("application/pdf", "brief.pdf") == "application/pdf"


def test_partition_keeps_order_and_splits_unsupported_types() -> None:
    files = [
        doc("brief.pdf"),
        doc("setup.exe", content_type="application/x-msdownload"),
        doc("notes.md", content_type=""),
        doc("song.mp3", content_type="audio/mpeg"),
    ]

    accepted, rejected = partition_by_media_type(files)

    assert [item.name for item in accepted] == ["brief.pdf", "notes.md", "song.mp3"]
    assert [item.name for item in rejected] == ["setup.exe"]
