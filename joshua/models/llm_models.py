"""
LLM Data Models — Wire schemas for the reasoning service and its output.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field, field_validator

from joshua.models.analysis_models import CONFIDENCE_LABELS


class Message(BaseModel):
    role: str = "user"
    content: str


class ReasoningRequest(BaseModel):
    """Request body for POST /messages."""

    model: str
    max_tokens: int
    temperature: float = Field(..., ge=0.1, le=0.3)
    system: str
    messages: list[Message]

    def estimated_tokens(self) -> int:
        """Rough token estimate (4 characters per token) used for rate limiting."""
        chars = len(self.system) + sum(len(m.content) for m in self.messages)
        return chars // 4


class ContentBlock(BaseModel):
    type: str
    text: str = ""


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ReasoningResponse(BaseModel):
    """Response body of a successful POST /messages."""

    id: str = ""
    model: str = ""
    content: list[ContentBlock] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    stop_reason: str | None = None

    def text(self) -> str:
        """Concatenate all text blocks."""
        return "\n".join(b.text for b in self.content if b.type == "text")

    @property
    def total_tokens(self) -> int:
        return self.usage.input_tokens + self.usage.output_tokens

    def estimated_cost(self, input_per_mtok: float, output_per_mtok: float) -> float:
        """Estimated USD cost of this response."""
        return (
            self.usage.input_tokens / 1_000_000 * input_per_mtok
            + self.usage.output_tokens / 1_000_000 * output_per_mtok
        )


def _confidence_from_label(value):
    if isinstance(value, str):
        key = value.strip().lower().replace("_", "").replace(" ", "").replace("-", "")
        if key in CONFIDENCE_LABELS:
            return CONFIDENCE_LABELS[key]
    return value


class DevelopmentPayload(BaseModel):
    """A critical development exactly as the service wrote it."""

    description: str = Field(..., validation_alias=AliasChoices("description", "event"))
    source_ref: str = ""
    impact: str = "medium"
    affected_regions: list[str] = Field(default_factory=list)
    escalation_potential: float = 0.0
    confidence: float = 0.5

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence_label(cls, value):
        return _confidence_from_label(value)


class AnalysisPayload(BaseModel):
    """
    Response schema the service is instructed to follow.

    Shape only; numeric bounds and narrative rules are enforced by the
    response validator so that violations can be reported precisely.
    """

    seconds_to_midnight: int
    risk_level: str | None = None
    confidence: float = Field(
        ..., validation_alias=AliasChoices("confidence", "confidence_level")
    )
    trend_direction: str | None = None
    risk_factors: dict[str, float] = Field(default_factory=dict)
    critical_developments: list[DevelopmentPayload] = Field(default_factory=list)
    early_warning_indicators: list[str] = Field(default_factory=list)
    executive_summary: str
    detailed_analysis: str
    recommendations: list[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence_label(cls, value):
        return _confidence_from_label(value)
