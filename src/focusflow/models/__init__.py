"""Convenience exports for FocusFlow LLM client implementations."""

from .gemini import GeminiClient
from .llm_client import (
    Attachment,
    LLMClient,
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMTransportError,
)

__all__ = [
    "Attachment",
    "GeminiClient",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMTransportError",
]
