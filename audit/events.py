"""
audit/events.py
Audit event emitter. Every event is written to the application log and
appended to the JSONL audit trail.
All failures are swallowed; audit must never block a webhook or an evaluation.
"""

import logging
from datetime import datetime, timezone

from audit import get_trace_id

logger = logging.getLogger(__name__)

# ── Canonical event types ─────────────────────────────────────
EVENT_TYPES = {
    "signature_verified",
    "signature_rejected",
    "signature_bypassed",
    "evaluation_dispatched",
    "evaluation_completed",
    "evaluation_failed",
    "ledger_hit",
    "ledger_append_failed",
}

_WARNING_EVENTS = {"signature_rejected", "signature_bypassed", "evaluation_failed", "ledger_append_failed"}


def emit_event(event_type, payload=None, trace_id=None):
    """
    Emit an audit event.

    Args:
        event_type: One of EVENT_TYPES (unknown types are still recorded).
        payload: dict of event-specific data. Must not hold secrets.
        trace_id: Overrides the context trace id.

    Returns:
        The trace_id used for the event.
    """
    trace_id = trace_id or get_trace_id()

    if event_type not in EVENT_TYPES:
        logger.warning("Unknown audit event type: %s", event_type)

    event = {
        "trace_id": trace_id,
        "event_type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload or {},
    }

    level = logging.WARNING if event_type in _WARNING_EVENTS else logging.INFO
    logger.log(level, "AUDIT %s trace=%s %s", event_type, trace_id, event["payload"])

    try:
        from audit.store_jsonl import append_event
        append_event(event)
    except Exception as e:
        logger.error("audit/store_jsonl write failed: %s", e)

    return trace_id
