"""Parse and structurally validate refinement responses."""

from __future__ import annotations

import json
from typing import Any, Mapping

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from ..errors import ModificationGrammarError, OracleContractError
from ..models.llm_client import strip_code_fence
from .schemas import RefinementProposal

__all__ = ["MODIFICATIONS_KEY", "parse_modifications", "validate_modifications"]

MODIFICATIONS_KEY = "modifications"

_PROPOSAL_ADAPTER = TypeAdapter(RefinementProposal)


def parse_modifications(raw: str) -> RefinementProposal:
    """Parse oracle text into a validated :class:`RefinementProposal`.

    Surrounding code fences are stripped and the rest must be strict JSON.
    Task ids are not checked against any plan here.
    """
    text = (raw or "").strip()
    if not text:
        raise OracleContractError("Refinement service returned an empty response.")
    text = strip_code_fence(text)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise OracleContractError(f"Failed to parse refinement response: {error}") from error
    return validate_modifications(payload)


def validate_modifications(payload: Any) -> RefinementProposal:
    """Validate an already decoded refinement response.

    The batch is accepted or rejected as a whole.
    """
    if not isinstance(payload, Mapping):
        raise OracleContractError("Refinement response must be a JSON object.")
    if not isinstance(payload.get(MODIFICATIONS_KEY), list):
        raise ModificationGrammarError(
            f"Invalid refinement response: missing {MODIFICATIONS_KEY!r} list."
        )
    try:
        return _PROPOSAL_ADAPTER.validate_python(payload)
    except ValidationError as error:
        messages = [_describe(detail) for detail in error.errors()]
        raise ModificationGrammarError(
            f"Invalid modification batch: {'; '.join(messages)}",
            messages,
        ) from error


def _describe(detail: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in detail.get("loc", ()))
    message = detail.get("msg", "invalid value")
    return f"{location}: {message}" if location else str(message)
