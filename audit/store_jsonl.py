"""
audit/store_jsonl.py
JSONL audit trail. One event per line, newest last.

The directory comes from AUDIT_LOG_DIR and is resolved on every write, so
tests and deployments can redirect it without a restart. An empty value
turns the trail off.
"""

import json
import logging
import os
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "data",
    "audit",
)
AUDIT_FILENAME = "audit_events.jsonl"
EVENT_FIELDS = ("trace_id", "event_type", "timestamp", "payload")

# Flask threads and the evaluation loop both write here
_write_lock = threading.Lock()


def audit_path() -> Optional[str]:
    directory = os.getenv("AUDIT_LOG_DIR", DEFAULT_AUDIT_DIR)
    return os.path.join(directory, AUDIT_FILENAME) if directory else None


def append_event(event: Dict) -> None:
    path = audit_path()
    if path is None:
        return

    record = {name: event.get(name) for name in EVENT_FIELDS}
    record["payload"] = record["payload"] or {}
    try:
        line = json.dumps(record, default=str, ensure_ascii=False)
        with _write_lock:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
    except (OSError, TypeError, ValueError) as e:
        logger.error("Audit trail write failed (%s): %s", path, e)


def read_events(event_type: Optional[str] = None, limit: Optional[int] = 100) -> List[Dict]:
    """Most recent events first. Corrupt lines are skipped. limit=None returns all."""
    path = audit_path()
    if path is None or not os.path.exists(path):
        return []

    events = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(record, dict) and (event_type is None or record.get("event_type") == event_type):
                events.append(record)
    events.reverse()
    return events if limit is None else events[:limit]
