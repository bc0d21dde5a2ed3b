"""
NotebookSaver Backend — Extraction Schemas
===========================================

What:  ExtractorConfig (the per-call extraction settings) and the Gemini
       generateContent wire format.
Why:   The request body and response shape are pinned down as models so
       CloudExtractor never builds or digs through raw dicts.
"""

import logging
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, SecretStr

from notebooksaver.config import DEFAULT_PROMPT, Settings

logger = logging.getLogger(__name__)

THINKING_PREFIX = (
    "THINKING: on\n"
    "REASONING: on\n"
    "PLANNING: on\n\n"
    "Take time to think through the image carefully. Analyze the content "
    "thoroughly and provide thoughtful, accurate text extraction.\n\n"
)


class ServiceKind(str, Enum):
    CLOUD = "Cloud"
    LOCAL = "Local"


class ExtractorConfig(BaseModel):
    """
    What:  Settings for one extraction, snapshotted when the call starts.
    Why frozen: a settings change mid-request must not affect that request.
    """

    service_kind: ServiceKind = ServiceKind.LOCAL
    model_id: str = ""
    prompt: str = DEFAULT_PROMPT
    token_budget: Optional[int] = Field(default=None, ge=0)
    credential: Optional[SecretStr] = None
    thinking_enabled: bool = False

    model_config = {"frozen": True}

    @property
    def has_credential(self) -> bool:
        return bool(self.credential and self.credential.get_secret_value().strip())

    @property
    def effective_prompt(self) -> str:
        """The prompt sent to Gemini, with the thinking directives when enabled."""
        prompt = self.prompt.strip() or DEFAULT_PROMPT
        if self.thinking_enabled:
            return THINKING_PREFIX + prompt
        return prompt

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractorConfig":
        """
        Build the config for the next extraction.

        Cloud without an API key falls back to Local so a capture is never
        refused just because the key has not been entered yet.
        """
        kind = ServiceKind(settings.text_extractor_service)
        credential = settings.gemini_api_key if settings.api_key_value else None
        if kind is ServiceKind.CLOUD and credential is None:
            logger.warning("Cloud extraction selected without an API key; using Local")
            kind = ServiceKind.LOCAL
        return cls(
            service_kind=kind,
            model_id=settings.resolved_model_id,
            prompt=settings.user_prompt,
            token_budget=settings.photo_token_budget,
            credential=credential,
            thinking_enabled=settings.thinking_enabled,
        )


# ══════════════════════════════════════════════════════════════════════════
# Gemini generateContent: request
# ══════════════════════════════════════════════════════════════════════════

class InlineData(BaseModel):
    mime_type: str
    data: str  # base64


class ContentPart(BaseModel):
    text: Optional[str] = None
    inline_data: Optional[InlineData] = None


class Content(BaseModel):
    parts: List[ContentPart]


class ThinkingConfig(BaseModel):
    thinkingBudget: int


class GenerationConfig(BaseModel):
    thinkingConfig: Optional[ThinkingConfig] = None


class GenerateContentRequest(BaseModel):
    """Serialize with model_dump(exclude_none=True)."""

    contents: List[Content]
    generationConfig: Optional[GenerationConfig] = None


# ══════════════════════════════════════════════════════════════════════════
# Gemini generateContent: response
# ══════════════════════════════════════════════════════════════════════════

class ResponsePart(BaseModel):
    text: Optional[str] = None

    model_config = {"extra": "ignore"}


class ResponseContent(BaseModel):
    parts: List[ResponsePart] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class Candidate(BaseModel):
    content: Optional[ResponseContent] = None
    finishReason: Optional[str] = None

    model_config = {"extra": "ignore"}


class GenerateContentResponse(BaseModel):
    candidates: List[Candidate] = Field(default_factory=list)
    promptFeedback: Optional[Any] = None

    model_config = {"extra": "ignore"}

    def joined_text(self) -> str:
        """All text parts of the first candidate, blank-line separated and trimmed."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        texts = [p.text for p in self.candidates[0].content.parts if p.text]
        return "\n\n".join(texts).strip()
