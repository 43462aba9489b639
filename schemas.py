"""
schemas.py
Boundary schemas: the Help Scout webhook payload and the normalized
EvaluationResult every code path produces.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


CATEGORY_NAMES = (
    "tone_empathy",
    "clarity_completeness",
    "standard_of_english",
    "problem_resolution",
)

MIN_SCORE = 1
MAX_SCORE = 10


# ── Evaluation result ─────────────────────────────────────────


class CategoryScore(BaseModel):
    score: float = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    feedback: str = ""


class EvaluationCategories(BaseModel):
    tone_empathy: CategoryScore
    clarity_completeness: CategoryScore
    standard_of_english: CategoryScore
    problem_resolution: CategoryScore


class EvaluationResult(BaseModel):
    """Normalized scorecard. Cached in memory and persisted to the ledger."""

    overall_score: float = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    categories: EvaluationCategories
    key_improvements: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    def category(self, name: str) -> CategoryScore:
        return getattr(self.categories, name)

    @property
    def failed(self) -> bool:
        return bool(self.error)


# Structured-output contract sent to the engine. Kept free of defaults and
# range keywords so the strict JSON schema is accepted by every model;
# ranges are enforced when it is converted into EvaluationResult.

class EngineCategory(BaseModel):
    score: float = Field(..., description="Score from 1-10")
    feedback: str = Field(..., description="Brief feedback explaining the score")


class EngineCategories(BaseModel):
    tone_empathy: EngineCategory = Field(..., description="Tone and empathy evaluation")
    clarity_completeness: EngineCategory = Field(..., description="Clarity and completeness evaluation")
    standard_of_english: EngineCategory = Field(..., description="English quality evaluation")
    problem_resolution: EngineCategory = Field(..., description="Problem resolution evaluation")


class EngineEvaluation(BaseModel):
    overall_score: float = Field(..., description="Overall score from 1-10")
    key_improvements: List[str] = Field(..., description="Array of 2-3 key improvement suggestions")
    categories: EngineCategories


FAILED_FEEDBACK = "Unable to evaluate - API error"
FAILED_IMPROVEMENT = "Evaluation engine error occurred - check logs for details"


def failed_evaluation(error: str) -> EvaluationResult:
    """Synthetic floor-scored result used when the engine call fails."""
    feedback = FAILED_FEEDBACK
    return EvaluationResult(
        overall_score=MIN_SCORE,
        categories=EvaluationCategories(
            **{name: CategoryScore(score=MIN_SCORE, feedback=feedback) for name in CATEGORY_NAMES}
        ),
        key_improvements=[FAILED_IMPROVEMENT],
        error=error or "Unknown evaluation error",
    )


# ── Webhook payload ───────────────────────────────────────────


class WebhookTicket(BaseModel):
    """
    Only `id` is checked. Everything else is passed through as sent and
    read through the accessors below, which tolerate any JSON shape.
    """

    model_config = ConfigDict(extra="allow")

    id: int
    number: Any = None
    subject: Any = None
    type: Any = None
    source: Any = None
    tags: Any = None

    def tag_names(self) -> List[str]:
        """Help Scout sends tags either as strings or as {"tag": ...} objects."""
        tags = self.tags
        if tags is None:
            return []
        if not isinstance(tags, list):
            tags = [tags]

        names = []
        for tag in tags:
            if isinstance(tag, dict):
                tag = tag.get("tag") or tag.get("name")
            if isinstance(tag, (str, int, float)) and not isinstance(tag, bool) and str(tag):
                names.append(str(tag))
        return names

    def subject_text(self) -> str:
        return "" if self.subject is None else str(self.subject)

    def type_name(self) -> str:
        return "" if self.type is None else str(self.type).lower()

    def source_type(self) -> str:
        if not isinstance(self.source, dict):
            return ""
        return str(self.source.get("type") or "").lower()


class WebhookPayload(BaseModel):
    """Help Scout Dynamic Content request. Only ticket.id is required."""

    model_config = ConfigDict(extra="allow")

    ticket: WebhookTicket
    customer: Any = None
    user: Any = None
    mailbox: Any = None


# ── Conversation ──────────────────────────────────────────────


@dataclass
class AgentResponse:
    """Latest team reply located in a conversation."""
    text: str
    created_at: Optional[str] = None
    agent_id: Union[int, str] = "unknown"
    agent_name: str = "Unknown"
