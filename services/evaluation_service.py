"""
services/evaluation_service.py
Evaluation orchestrator.

Tier order for a cache key:
  1. memory cache        -> scorecard
  2. in-flight set       -> processing placeholder
  3. ledger (today only) -> scorecard, memory cache seeded
  4. dispatch one background evaluation -> processing placeholder

Runs on the evaluation loop (services/runtime.py). Engine failures become a
cached, persisted floor-scored result; nothing here raises to the caller
except programming errors.
"""

import html
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ai.context_classifier import get_context_note
from audit import set_trace_id
from audit.events import emit_event
from errors import EvaluationEngineError, UpstreamFetchError
from integrations.helpscout_client import (
    find_latest_team_response,
    thread_author_type,
    thread_created_at,
)
from schemas import AgentResponse, EvaluationResult, WebhookPayload, WebhookTicket, failed_evaluation
from services.evaluation_cache import PROCESSING, EvaluationCache
from services.ledger_service import LedgerCache
from utils.cache_key import derive_cache_key

logger = logging.getLogger(__name__)

PROMPT_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "ai",
    "prompts",
    "evaluation.md",
)

CONTEXT_THREAD_LIMIT = 5
MIN_CONTEXT_LINE_LENGTH = 10
NO_CONTEXT = "No previous conversation context available"

CHAT_SOURCE_TYPES = ("chat", "beacon")
CHAT_SUBJECT_PREFIX = "Live chat on "

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


# ── Outcome ───────────────────────────────────────────────────


STATUS_RESULT = "result"
STATUS_PROCESSING = "processing"
STATUS_NOTICE = "notice"


@dataclass
class EvaluationOutcome:
    """What the webhook should render. Never leaks engine-path details."""
    status: str
    result: Optional[EvaluationResult] = None
    message: str = ""
    ticket_number: Any = None
    source: str = ""
    cache_key: Optional[str] = None

    @classmethod
    def scorecard(cls, result, source, cache_key=None):
        return cls(status=STATUS_RESULT, result=result, source=source, cache_key=cache_key)

    @classmethod
    def processing(cls, cache_key=None):
        return cls(status=STATUS_PROCESSING, cache_key=cache_key)

    @classmethod
    def notice(cls, message, ticket_number=None):
        return cls(status=STATUS_NOTICE, message=message, ticket_number=ticket_number)


# ── Text helpers ──────────────────────────────────────────────


def decode_html(text: Optional[str]) -> str:
    """Entities first, then tags to spaces, then collapse whitespace."""
    decoded = html.unescape(text or "")
    decoded = _TAG_RE.sub(" ", decoded)
    return _WS_RE.sub(" ", decoded).strip()


def _sender_label(thread: Dict[str, Any]) -> str:
    author = thread_author_type(thread)
    if author == "customer":
        return "CUSTOMER"
    if author == "user":
        return "TEAM"
    return "SYSTEM"


def get_conversation_context(threads: List[Dict[str, Any]], limit: int = CONTEXT_THREAD_LIMIT) -> str:
    """Last `limit` threads, oldest first, as "SENDER: text" paragraphs."""
    if not threads:
        return ""
    ordered = sorted(threads, key=thread_created_at)[-limit:]
    lines = []
    for thread in ordered:
        text = decode_html(thread.get("body")) if thread.get("body") else ""
        line = f"{_sender_label(thread)}: {text}"
        if len(line) > MIN_CONTEXT_LINE_LENGTH:
            lines.append(line)
    return "\n\n".join(lines)


def is_chat_conversation(ticket: WebhookTicket) -> bool:
    if ticket.type_name() == "chat" or ticket.source_type() in CHAT_SOURCE_TYPES:
        return True
    return ticket.subject_text().startswith(CHAT_SUBJECT_PREFIX)


def load_prompt_template(path: str = PROMPT_PATH) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


# ── Orchestrator ──────────────────────────────────────────────


class EvaluationService:

    def __init__(
        self,
        cache: EvaluationCache,
        ledger: LedgerCache,
        engine,
        helpscout=None,
        prompt_template: Optional[str] = None,
        classification: Optional[Dict] = None,
    ):
        self.cache = cache
        self.ledger = ledger
        self.engine = engine
        self.helpscout = helpscout
        self.prompt_template = prompt_template or load_prompt_template()
        self.classification = classification

    async def handle_webhook(self, payload: WebhookPayload, trace_id: Optional[str] = None) -> EvaluationOutcome:
        """Full webhook flow after authentication and schema validation."""
        set_trace_id(trace_id)
        ticket = payload.ticket

        if is_chat_conversation(ticket):
            logger.info("Skipping evaluation for chat ticket %s", ticket.id)
            return EvaluationOutcome.notice("Not available for chats", ticket.number)

        try:
            threads = await self.helpscout.fetch_threads(ticket.id)
        except UpstreamFetchError as e:
            logger.error("Help Scout API error for ticket %s: %s", ticket.id, e)
            return EvaluationOutcome.notice("Could not fetch conversation data.", ticket.number)

        response = find_latest_team_response(threads)
        if response is None:
            logger.info("No team response found for ticket %s", ticket.id)
            return EvaluationOutcome.notice("No team response found to evaluate.", ticket.number)

        logger.debug(
            "Found team response ticket=%s length=%d agent=%s",
            ticket.id,
            len(response.text),
            response.agent_name,
        )

        cache_key = derive_cache_key(ticket.id, response.text)
        return await self.process(ticket, threads, response, cache_key)

    async def process(
        self,
        ticket: WebhookTicket,
        threads: List[Dict[str, Any]],
        response: AgentResponse,
        cache_key: str,
    ) -> EvaluationOutcome:
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Memory cache hit for %s", cache_key)
            return EvaluationOutcome.scorecard(cached, "memory", cache_key)

        if self.cache.is_in_flight(cache_key):
            logger.info("Already evaluating %s in background", cache_key)
            return EvaluationOutcome.processing(cache_key)

        stored = await self.ledger.lookup(ticket.id)
        if stored is not None:
            logger.info("Ledger hit for ticket %s - no engine call needed", ticket.id)
            self.cache.set(cache_key, stored)
            return EvaluationOutcome.scorecard(stored, "ledger", cache_key)

        # The ledger await yielded; resolve() re-checks both tiers atomically
        will_dispatch = not self.cache.is_in_flight(cache_key)
        outcome = self.cache.resolve(
            cache_key,
            lambda: self.evaluate_in_background(ticket, threads, response, cache_key),
        )
        if outcome is PROCESSING:
            if will_dispatch:
                emit_event("evaluation_dispatched", {"ticket_id": ticket.id, "cache_key": cache_key})
            return EvaluationOutcome.processing(cache_key)
        return EvaluationOutcome.scorecard(outcome, "memory", cache_key)

    async def evaluate_in_background(
        self,
        ticket: WebhookTicket,
        threads: List[Dict[str, Any]],
        response: AgentResponse,
        cache_key: str,
    ) -> EvaluationResult:
        """
        Background task body. The returned result is stored in the memory
        cache by EvaluationCache when the task settles.
        """
        clean_text = decode_html(response.text)
        evaluation = await self.evaluate_response(clean_text, threads, ticket)

        if evaluation.failed:
            emit_event("evaluation_failed", {"ticket_id": ticket.id, "cache_key": cache_key, "error": evaluation.error})
        else:
            emit_event("evaluation_completed", {
                "ticket_id": ticket.id,
                "cache_key": cache_key,
                "overall_score": evaluation.overall_score,
            })

        await self.ledger.append(ticket.id, response, ticket.number, response.text, evaluation)
        return evaluation

    async def evaluate_response(
        self,
        clean_text: str,
        threads: List[Dict[str, Any]],
        ticket: WebhookTicket,
    ) -> EvaluationResult:
        tags = ticket.tag_names()
        context_note = get_context_note(tags, ticket.subject_text(), clean_text, self.classification)
        prompt = self.build_prompt(context_note, get_conversation_context(threads), clean_text)

        try:
            return await self.engine.evaluate(prompt, tags, classification=self.classification)
        except EvaluationEngineError as e:
            logger.error("Evaluation engine error for ticket %s: %s", ticket.id, e)
            return failed_evaluation(str(e))

    def build_prompt(self, context_note: str, conversation_context: str, clean_text: str) -> str:
        return (
            self.prompt_template
            .replace("{{CONTEXT_NOTE}}", context_note)
            .replace("{{CONVERSATION_CONTEXT}}", conversation_context or NO_CONTEXT)
            .replace("{{RESPONSE_TEXT}}", clean_text)
        )
