"""LLM-backed oracle that proposes plans and plan modifications."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..errors import TransferError
from ..ingest.media import effective_mime_type, guess_content_type
from ..models.llm_client import Attachment, LLMClient, LLMRequest
from ..prompts import render_generation_prompt, render_refinement_prompt
from .request import GenerationRequest
from .schemas import Plan

__all__ = ["DocumentReader", "LLMPlanOracle", "PlanDraft", "PlanOracle"]

LOGGER = logging.getLogger(__name__)


class DocumentReader(Protocol):
    """Anything able to return stored document bytes by path."""

    def read(self, path: str) -> bytes:
        ...


class PlanOracle(Protocol):
    """Generation and refinement collaborator used by a planning session."""

    def generate(self, request: GenerationRequest) -> Mapping[str, Any]:
        ...

    def refine(self, command: str, plan: Plan, document_context: Optional[str] = None) -> str:
        ...


class PlanDraft(BaseModel):
    """Plan as emitted by the model before validation."""

    model_config = ConfigDict(extra="ignore")

    project_title: str = ""
    sub_tasks: List[Dict[str, Any]] = Field(default_factory=list)
    time_warning: Optional[str] = None


class LLMPlanOracle:
    """Oracle that prompts an :class:`LLMClient` for plans and modification lists."""

    def __init__(
        self,
        client: LLMClient,
        *,
        documents: Optional[DocumentReader] = None,
        generation_model: Optional[str] = None,
        refinement_model: Optional[str] = None,
        generation_temperature: float = 0.7,
        refinement_temperature: float = 0.3,
        max_output_tokens: Optional[int] = None,
    ) -> None:
        self._client = client
        self._documents = documents
        self._generation_model = generation_model
        self._refinement_model = refinement_model
        self._generation_temperature = generation_temperature
        self._refinement_temperature = refinement_temperature
        self._max_output_tokens = max_output_tokens

    def generate(self, request: GenerationRequest) -> Mapping[str, Any]:
        prompt = render_generation_prompt(
            goal=request.goal,
            allocated_minutes=request.allocated_minutes,
            strict=request.strict_time_adherence,
            energy_level=request.energy_level.value,
            breakdown_level=request.breakdown_level.value,
            document_names=request.document_names(),
        )
        llm_request = LLMRequest(
            prompt=prompt,
            response_model=PlanDraft,
            model=self._generation_model,
            attachments=self._attachments(request),
            temperature=self._generation_temperature,
            max_output_tokens=self._max_output_tokens,
        )
        draft = self._client.invoke(llm_request)
        return {
            "success": True,
            "plan": draft.sub_tasks,
            "projectTitle": draft.project_title,
            "timeWarning": draft.time_warning,
        }

    def refine(self, command: str, plan: Plan, document_context: Optional[str] = None) -> str:
        llm_request: LLMRequest[Any] = LLMRequest(
            prompt=render_refinement_prompt(command, plan, document_context),
            model=self._refinement_model,
            temperature=self._refinement_temperature,
            max_output_tokens=self._max_output_tokens,
        )
        return self._client.complete(llm_request)

    def _attachments(self, request: GenerationRequest) -> list[Attachment]:
        """Read every referenced document; any read failure is a :class:`TransferError`."""
        attachments: list[Attachment] = []
        for item in request.files:
            try:
                data = item.read_bytes()
            except OSError as error:
                raise TransferError(
                    f"Failed to read {item.name}: {error}", file_name=item.name
                ) from error
            attachments.append(
                Attachment(
                    mime_type=effective_mime_type(item.content_type, item.name),
                    data=data,
                    name=item.name,
                )
            )
        if request.document_paths and self._documents is None:
            raise TransferError("Storage paths were supplied but no document reader is configured.")
        for path in request.document_paths:
            name = path.rsplit("/", 1)[-1]
            try:
                data = self._documents.read(path)
            except OSError as error:
                raise TransferError(f"Failed to read stored {name}: {error}", file_name=name) from error
            attachments.append(
                Attachment(
                    mime_type=effective_mime_type(guess_content_type(name), name),
                    data=data,
                    name=name,
                )
            )
        LOGGER.debug("Attaching %d document(s) to the generation prompt", len(attachments))
        return attachments
