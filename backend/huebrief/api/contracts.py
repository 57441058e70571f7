from typing import Literal

from pydantic import Field

from huebrief.drafting import CamelModel, GenerationRequest


class ParagraphRegenerationRequest(GenerationRequest):
    title: str = Field(default="", max_length=300)
    paragraphs: list[str] = Field(default_factory=list, max_length=200)
    # Range is checked by the orchestrator so that bad indexes map to AI_DRAFT_PARAGRAPH_INVALID.
    paragraph_index: int


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=2000)
    client_id: str | None = Field(default=None, max_length=120)
    emotion: str | None = None


class ComplianceCheckRequest(CamelModel):
    content: str = Field(..., max_length=20000)


class AlertTestRequest(CamelModel):
    type: Literal["failure_rate", "latency", "ai_error"] = "ai_error"


class TitleLengthSettingsUpdate(CamelModel):
    title_max_length: int


class ModelTimeoutSettingsUpdate(CamelModel):
    model_timeout_ms: int
