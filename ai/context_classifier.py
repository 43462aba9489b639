# ai/context_classifier.py
"""
Ticket context classification.

Picks the context note injected into the evaluation prompt. Precedence:
services tag > presales tag/subject > "investigating" phrase in the response.
First match wins; no match returns "".
"""

import json
import logging
import os
from functools import lru_cache
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

CLASSIFICATION_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "config",
    "ticket_classification.json",
)


@lru_cache(maxsize=1)
def load_classification(path: str = CLASSIFICATION_PATH) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _lower_all(values: Optional[Iterable[str]]):
    return [str(v).lower() for v in (values or []) if v]


def _any_contains(haystacks, needles) -> bool:
    return any(needle.lower() in hay for hay in haystacks for needle in needles)


def is_services_ticket(tags, config: Optional[Dict] = None) -> bool:
    config = config or load_classification()
    return _any_contains(_lower_all(tags), config["services"]["keywords"])


def is_presales_ticket(tags, subject: Optional[str], config: Optional[Dict] = None) -> bool:
    config = config or load_classification()
    presales = config["presales"]
    if _any_contains(_lower_all(tags), presales["keywords"]):
        return True
    return bool(subject) and _any_contains([subject.lower()], presales.get("subject_keywords", []))


def is_investigating(response_text: Optional[str], config: Optional[Dict] = None) -> bool:
    config = config or load_classification()
    if not response_text:
        return False
    return _any_contains([response_text.lower()], config["investigating"]["phrases"])


def get_context_note(tags, subject: Optional[str], response_text: Optional[str], config: Optional[Dict] = None) -> str:
    """Context note for the evaluation prompt, or "" when nothing applies."""
    config = config or load_classification()

    services = is_services_ticket(tags, config)
    presales = not services and is_presales_ticket(tags, subject, config)
    investigating = not (services or presales) and is_investigating(response_text, config)

    logger.debug(
        "Ticket context detection services=%s presales=%s investigating=%s tags=%s",
        services,
        presales,
        investigating,
        ", ".join(_lower_all(tags)) or "none",
    )

    if services:
        return config["services"]["context_note"]
    if presales:
        return config["presales"]["context_note"]
    if investigating:
        return config["investigating"]["context_note"]
    return ""
