# ai/post_processor.py
"""
Repairs loosely-formatted engine output (the plain JSON path).

Structured-output responses are schema-guaranteed and skip this step.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ai.context_classifier import is_services_ticket
from schemas import (
    CATEGORY_NAMES,
    CategoryScore,
    EvaluationCategories,
    EvaluationResult,
    MAX_SCORE,
    MIN_SCORE,
)

logger = logging.getLogger(__name__)

SERVICES_TONE_FLOOR = 7
SERVICES_TONE_FEEDBACK = "Services team communication - standard tone requirements adjusted"
NO_RECOMMENDATIONS = "No recommendations"
MIN_IMPROVEMENT_LENGTH = 5

_MORE_DETAIL_RE = re.compile(r"provide more detail", re.IGNORECASE)


def _clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return float(MIN_SCORE)
    return min(max(score, MIN_SCORE), MAX_SCORE)


def _normalize_categories(raw: Any) -> Dict[str, Dict[str, Any]]:
    raw = raw if isinstance(raw, dict) else {}
    categories = {}
    for name in CATEGORY_NAMES:
        entry = raw.get(name)
        entry = entry if isinstance(entry, dict) else {}
        categories[name] = {
            "score": _clamp_score(entry.get("score")),
            "feedback": str(entry.get("feedback") or "").strip(),
        }
    return categories


def remove_contradictions(categories: Dict[str, Dict[str, Any]]) -> None:
    """Drop "provide more detail" when clarity already asks for brevity."""
    clarity = categories["clarity_completeness"]["feedback"]
    resolution = categories["problem_resolution"]["feedback"]
    if "concise" in clarity.lower() and "more detail" in resolution.lower():
        cleaned = _MORE_DETAIL_RE.sub("", resolution)
        categories["problem_resolution"]["feedback"] = re.sub(r"\s{2,}", " ", cleaned).strip()
        logger.debug("Removed contradictory 'more detail' feedback")


def apply_services_floor(categories: Dict[str, Dict[str, Any]]) -> None:
    tone = categories["tone_empathy"]
    tone["score"] = max(tone["score"], SERVICES_TONE_FLOOR)
    tone["feedback"] = SERVICES_TONE_FEEDBACK


def clean_improvements(improvements: Any) -> List[str]:
    if not isinstance(improvements, list):
        improvements = [improvements] if improvements else []

    cleaned = []
    for item in improvements:
        if not isinstance(item, str):
            continue
        text = item.strip()
        lowered = text.lower()
        if len(text) < MIN_IMPROVEMENT_LENGTH:
            continue
        if "continue" in lowered and "good" in lowered:
            continue
        if lowered == NO_RECOMMENDATIONS.lower():
            continue
        cleaned.append(text)

    return cleaned or [NO_RECOMMENDATIONS]


def sanitize_evaluation(payload: Dict[str, Any], tags=None, classification: Optional[Dict] = None) -> EvaluationResult:
    """
    Turn a parsed-but-unvalidated engine response into an EvaluationResult.

    Args:
        payload: Decoded JSON from the engine
        tags: Ticket tags, used for the services tone floor
        classification: Override for the ticket classification config
    """
    if not isinstance(payload, dict):
        raise ValueError("evaluation payload must be a JSON object")

    categories = _normalize_categories(payload.get("categories"))

    remove_contradictions(categories)

    if is_services_ticket(tags or [], classification):
        apply_services_floor(categories)

    return EvaluationResult(
        overall_score=_clamp_score(payload.get("overall_score")),
        categories=EvaluationCategories(
            **{name: CategoryScore(**values) for name, values in categories.items()}
        ),
        key_improvements=clean_improvements(payload.get("key_improvements")),
    )
