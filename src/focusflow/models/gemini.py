"""Gemini client that speaks the ``generateContent`` REST API."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Optional

from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["GeminiClient", "Transport"]

LOGGER = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], str]

_BLOCKING_FINISH_REASONS = {
    "SAFETY": "Request was blocked by safety filters. Please rephrase your request.",
    "MAX_TOKENS": "Response was truncated. Try a shorter description or fewer documents.",
}


class GeminiClient(LLMClient):
    """Thin adapter around the Gemini ``generateContent`` endpoint."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta/models",
        model: str = "gemini-2.5-flash",
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
        api_key_env: str = "GEMINI_API_KEY",
    ) -> None:
        super().__init__(model=model)
        self._api_key = api_key or os.getenv(api_key_env)
        self._base_url = base_url.rstrip("/")
        timeout_override = os.getenv("FOCUSFLOW_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    timeout = parsed
            except ValueError:
                LOGGER.warning("Ignoring invalid FOCUSFLOW_TIMEOUT value %r", timeout_override)
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request over the configured transport."""
        try:
            raw_response = self._transport(payload)
        except LLMTransportError:
            raise
        except Exception as error:  # pragma: no cover - transport specific
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        normalised = self._extract_model_payload(raw_response)
        if normalised is None:
            raise LLMResponseFormatError("Gemini response did not contain any output text.")
        return normalised

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport that targets the Gemini REST API."""
        import urllib.error
        import urllib.parse
        import urllib.request

        body = dict(payload)
        model = body.pop("model", self.model)
        url = f"{self._base_url}/{urllib.parse.quote(model)}:generateContent"
        data = json.dumps(body).encode("utf-8")
        request = urllib.request.Request(
            url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": self._api_key or "",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError("Gemini response timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach Gemini endpoint: {error.reason}") from error

        if status >= 400:
            raise LLMTransportError(f"Unexpected HTTP status {status}")

        return raw.decode("utf-8")

    def _extract_model_payload(self, raw_response: str) -> Optional[str]:
        """Extract the text content of the first candidate."""
        if not raw_response:
            return None

        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response

        if not isinstance(data, dict) or "candidates" not in data:
            # Already the model's own JSON output.
            return raw_response

        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            raise LLMResponseFormatError("No candidates returned from Gemini API.")

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in _BLOCKING_FINISH_REASONS:
            raise LLMTransportError(_BLOCKING_FINISH_REASONS[finish_reason])

        return self._first_text_content(candidate.get("content"))

    @staticmethod
    def _first_text_content(content: Any) -> Optional[str]:
        """Concatenate the text parts of a candidate's content block."""
        if not isinstance(content, dict):
            return None
        parts = content.get("parts")
        if not isinstance(parts, list):
            return None
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip()
        ]
        if not texts:
            return None
        return "".join(texts)
