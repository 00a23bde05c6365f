"""Typed client base class shared by all language-model integrations."""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

__all__ = [
    "Attachment",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMTransportError",
    "strip_code_fence",
]


T = TypeVar("T")

AttemptLogger = Callable[[Dict[str, Any], Optional[str], Optional[Any], Optional[Exception]], None]


class LLMClientError(RuntimeError):
    """Base error raised for structured LLM client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response."""


class LLMResponseFormatError(LLMClientError):
    """Raised when the model returns payload that is not valid JSON."""


@dataclass(slots=True)
class Attachment:
    """Binary document sent alongside the prompt."""

    mime_type: str
    data: bytes
    name: str = ""

    def to_part(self) -> Dict[str, Any]:
        return {
            "inline_data": {
                "mime_type": self.mime_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            }
        }


@dataclass(slots=True)
class LLMRequest(Generic[T]):
    """Typed request payload sent to an LLM."""

    prompt: str
    response_model: Optional[Type[T]] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    attachments: list[Attachment] = field(default_factory=list)
    temperature: float = 0.0
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render a transport-ready ``generateContent`` payload."""
        parts: list[Dict[str, Any]] = [{"text": self.prompt}]
        parts.extend(attachment.to_part() for attachment in self.attachments)

        generation_config: Dict[str, Any] = {"temperature": self.temperature}
        if self.top_k is not None:
            generation_config["topK"] = self.top_k
        if self.top_p is not None:
            generation_config["topP"] = self.top_p
        if self.max_output_tokens is not None:
            generation_config["maxOutputTokens"] = self.max_output_tokens
        if self.response_model is not None:
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if self.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": self.system_prompt}]}
        return payload


class LLMClient:
    """High-level helper that sends one request and validates the JSON reply.

    Requests are never retried here; retrying is left to the caller.
    """

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def complete(self, request: LLMRequest[Any]) -> str:
        """Invoke the model and return its raw text output."""
        payload = request.to_payload(self._model)
        raw = self._raw_invoke(payload)
        if not raw or not raw.strip():
            raise LLMResponseFormatError("Model returned an empty response.")
        return raw

    def invoke(self, request: LLMRequest[T]) -> T:
        """Invoke the underlying model and return a validated response."""
        result, _ = self.invoke_structured(request)
        return result

    def invoke_structured(
        self,
        request: LLMRequest[T],
        *,
        logger: Optional[AttemptLogger] = None,
    ) -> tuple[T, Any]:
        """Invoke the model and return both the structured response and parsed payload."""
        if request.response_model is None:
            raise ValueError("invoke_structured() requires a response_model.")

        payload = request.to_payload(self._model)
        raw: Optional[str] = None
        data: Optional[Any] = None
        try:
            raw = self._raw_invoke(payload)
            data = self._parse_json(raw)
            validated = TypeAdapter(request.response_model).validate_python(data)
        except ValidationError as error:
            if logger:
                logger(payload, raw, data, error)
            raise LLMResponseFormatError(
                f"Model response did not match {request.response_model.__name__}: {error}"
            ) from error
        except LLMClientError as error:
            if logger:
                logger(payload, raw, data, error)
            raise
        if logger:
            logger(payload, raw, data, None)
        return validated, data

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    @staticmethod
    def _parse_json(raw_response: str) -> Any:
        """Parse JSON payloads and normalize errors."""
        text = strip_code_fence(raw_response.strip())
        if not text:
            raise LLMResponseFormatError("Model returned an empty response.")

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
        # Models sometimes wrap the object in prose or leave a trailing comma.
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            candidate = re.sub(r",(\s*[}\]])", r"\1", text[start : end + 1])
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                pass
        raise LLMResponseFormatError(f"Model returned invalid JSON: {text[:200]}")


def strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    if not payload.startswith("```"):
        return payload
    fence_header_match = re.match(r"```(?:json)?", payload[:10], re.IGNORECASE)
    if not fence_header_match:
        return payload
    fence_end = payload.find("```", len(fence_header_match.group(0)))
    if fence_end == -1:
        return payload
    content_start = payload.find("\n", len(fence_header_match.group(0)))
    if content_start == -1 or content_start > fence_end:
        return payload[len(fence_header_match.group(0)) : fence_end].strip()
    return payload[content_start + 1 : fence_end].strip()

