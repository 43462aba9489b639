"""
services/ledger_service.py
Second-tier evaluation cache backed by the append-only ledger.

Lookups are day-scoped: only an evaluation appended today (UTC) for the
same ticket is reused. Neither lookup nor append ever raises; a broken
store degrades to "no hit" / "not persisted".
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine

from audit.events import emit_event
from db import create_ledger_engine, init_db, make_session_factory, safe_commit
from errors import PersistenceError
from models import IMPROVEMENT_SEPARATOR, LedgerRow
from schemas import (
    AgentResponse,
    CATEGORY_NAMES,
    CategoryScore,
    EvaluationCategories,
    EvaluationResult,
    FAILED_FEEDBACK,
    MAX_SCORE,
    MIN_SCORE,
)

logger = logging.getLogger(__name__)

# The ledger has no error column; failure rows are recognised by their feedback
LEDGER_FAILURE_ERROR = "Evaluation engine error recorded in the ledger - check logs for details"


def _utcnow():
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_score(value) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return float(MIN_SCORE)
    return min(max(score, MIN_SCORE), MAX_SCORE)


def row_to_evaluation(row: LedgerRow) -> EvaluationResult:
    """Rebuild an EvaluationResult from a stored ledger row."""
    categories = {
        name: CategoryScore(
            score=_parse_score(getattr(row, f"{name}_score")),
            feedback=getattr(row, f"{name}_feedback") or "",
        )
        for name in CATEGORY_NAMES
    }
    improvements = [item for item in (row.key_improvements or "").split(IMPROVEMENT_SEPARATOR) if item]
    failed = all(category.feedback == FAILED_FEEDBACK for category in categories.values())
    return EvaluationResult(
        overall_score=_parse_score(row.overall_score),
        categories=EvaluationCategories(**categories),
        key_improvements=improvements,
        error=LEDGER_FAILURE_ERROR if failed else None,
    )


def evaluation_to_row(
    ticket_id,
    agent: AgentResponse,
    ticket_number,
    response_text: str,
    evaluation: EvaluationResult,
    timestamp: Optional[datetime] = None,
) -> LedgerRow:
    values = {
        "timestamp": timestamp or _utcnow(),
        "ticket_id": str(ticket_id),
        "agent_id": str(agent.agent_id) if agent.agent_id is not None else None,
        "agent_name": agent.agent_name,
        "overall_score": evaluation.overall_score,
        "key_improvements": IMPROVEMENT_SEPARATOR.join(evaluation.key_improvements),
        "response_text": response_text or "",
        "ticket_number": str(ticket_number) if ticket_number is not None else None,
    }
    for name in CATEGORY_NAMES:
        category = evaluation.category(name)
        values[f"{name}_score"] = category.score
        values[f"{name}_feedback"] = category.feedback
    return LedgerRow(**values)


class LedgerCache:
    """Async facade over the SQL ledger. Blocking work runs in a thread."""

    def __init__(self, engine: Optional[Engine] = None, clock: Callable[[], datetime] = _utcnow):
        self.engine = engine
        self._session_factory = make_session_factory(engine) if engine is not None else None
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: Optional[str]) -> "LedgerCache":
        """Build from configuration. A bad URL logs and yields a disabled ledger."""
        if not database_url:
            logger.warning("Ledger not configured - evaluations will only be cached in memory")
            return cls()
        try:
            engine = create_ledger_engine(database_url)
            init_db(engine)
            logger.info("Ledger available (%s)", engine.url.render_as_string(hide_password=True))
            return cls(engine)
        except Exception as e:
            logger.error("Ledger setup error: %s", e)
            return cls()

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None

    # ── Lookup ────────────────────────────────────────────────

    async def lookup(self, ticket_id) -> Optional[EvaluationResult]:
        """Most recent evaluation appended today for ticket_id, or None."""
        if not self.enabled:
            return None
        try:
            result = await asyncio.to_thread(self._lookup_sync, str(ticket_id))
        except Exception as e:
            logger.error("Ledger lookup failed for ticket %s (non-fatal): %s", ticket_id, e)
            return None
        if result is not None:
            emit_event("ledger_hit", {"ticket_id": ticket_id})
        return result

    def _lookup_sync(self, ticket_id: str) -> Optional[EvaluationResult]:
        today = self._clock().astimezone(timezone.utc).date()
        with self._session_factory() as session:
            rows = session.execute(
                select(LedgerRow)
                .where(LedgerRow.ticket_id == ticket_id)
                .order_by(LedgerRow.id.desc())
            ).scalars()
            for row in rows:
                if row.timestamp is not None and _as_utc(row.timestamp).date() == today:
                    logger.info("Found existing ledger evaluation for ticket %s (row %s)", ticket_id, row.id)
                    return row_to_evaluation(row)
        return None

    # ── Append ────────────────────────────────────────────────

    async def append(
        self,
        ticket_id,
        agent: AgentResponse,
        ticket_number,
        response_text: str,
        evaluation: EvaluationResult,
    ) -> bool:
        """Append one row. Returns False (and logs) when persistence fails."""
        if not self.enabled:
            return False
        try:
            await asyncio.to_thread(
                self._append_sync, ticket_id, agent, ticket_number, response_text, evaluation
            )
            logger.info("Evaluation saved to ledger for ticket %s agent %s", ticket_id, agent.agent_name)
            return True
        except Exception as e:
            logger.error("Failed to save evaluation to ledger for ticket %s: %s", ticket_id, e)
            emit_event("ledger_append_failed", {"ticket_id": ticket_id, "error": str(e)[:200]})
            return False

    def _append_sync(self, ticket_id, agent, ticket_number, response_text, evaluation) -> None:
        row = evaluation_to_row(
            ticket_id, agent, ticket_number, response_text, evaluation, timestamp=self._clock()
        )
        with self._session_factory() as session:
            session.add(row)
            if not safe_commit(session):
                raise PersistenceError(f"ledger append rejected for ticket {ticket_id}")
