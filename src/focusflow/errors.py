"""Error taxonomy shared by the ingestion, upload and refinement layers."""

from __future__ import annotations

from typing import Iterable

__all__ = [
    "ApplyError",
    "FocusFlowError",
    "InputValidationError",
    "ModificationGrammarError",
    "OracleContractError",
    "TransferError",
]


class FocusFlowError(RuntimeError):
    """Base error raised for user-facing planning failures."""


class InputValidationError(FocusFlowError):
    """Raised when quota rules or the modification grammar are violated."""

    def __init__(self, message: str, messages: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.messages: list[str] = list(messages) if messages is not None else [message]


class ModificationGrammarError(InputValidationError):
    """Raised when an oracle modification batch is structurally invalid."""


class TransferError(FocusFlowError):
    """Raised when a document upload fails; the generation attempt is aborted."""

    def __init__(self, message: str, *, file_name: str | None = None) -> None:
        super().__init__(message)
        self.file_name = file_name


class OracleContractError(FocusFlowError):
    """Raised when the oracle returns a malformed, empty or failed response."""


class ApplyError(FocusFlowError):
    """Raised when applying a validated modification batch fails unexpectedly."""
