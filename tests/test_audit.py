"""
Trace ids + JSONL audit trail
"""

import asyncio

import pytest

import cli_audit
from audit import generate_trace_id, get_trace_id, set_trace_id
from audit.events import emit_event
from audit.store_jsonl import audit_path, read_events
from utils.signature import compute_signature, verify_signature


@pytest.fixture
def trail(tmp_path, monkeypatch):
    monkeypatch.setenv("AUDIT_LOG_DIR", str(tmp_path))
    return tmp_path


def test_trail_disabled_by_empty_dir():
    # conftest sets AUDIT_LOG_DIR=""
    assert audit_path() is None
    emit_event("ledger_hit", {"ticket_id": 1})
    assert read_events() == []


def test_events_written_newest_first(trail):
    emit_event("evaluation_dispatched", {"ticket_id": 1}, trace_id="t-1")
    emit_event("evaluation_completed", {"ticket_id": 1, "overall_score": 8.0}, trace_id="t-1")

    events = read_events()
    assert [e["event_type"] for e in events] == ["evaluation_completed", "evaluation_dispatched"]
    assert events[0]["payload"]["overall_score"] == 8.0
    assert events[0]["trace_id"] == "t-1"
    assert read_events(event_type="evaluation_dispatched", limit=5)[0]["payload"] == {"ticket_id": 1}


def test_corrupt_lines_skipped(trail):
    emit_event("ledger_hit", {"ticket_id": 2})
    with open(audit_path(), "a", encoding="utf-8") as f:
        f.write("{not json\n")
    assert len(read_events()) == 1


def test_signature_outcomes_are_audited(trail):
    body = b'{"ticket": {"id": 1}}'
    verify_signature(body, compute_signature(body, "s3cret"), "s3cret")
    verify_signature(body, "A" * 28, "s3cret")

    types = [e["event_type"] for e in read_events()]
    assert types == ["signature_rejected", "signature_verified"]


def test_trace_id_follows_context():
    async def scenario():
        set_trace_id("request-7")

        async def background():
            return get_trace_id()

        return await asyncio.get_running_loop().create_task(background())

    assert asyncio.run(scenario()) == "request-7"


def test_generated_trace_ids_are_unique():
    ids = {generate_trace_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(tid) == 16 for tid in ids)


# ── CLI ───────────────────────────────────────────────────────


def test_cli_filters_by_type_and_trace(trail, capsys):
    emit_event("signature_rejected", {"reason": "mismatch"}, trace_id="req-a")
    emit_event("evaluation_dispatched", {"ticket_id": 1}, trace_id="req-b")
    emit_event("evaluation_completed", {"ticket_id": 1}, trace_id="req-b")

    assert cli_audit.main(["--type", "signature_rejected"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1 and '"req-a"' in lines[0]

    assert cli_audit.main(["--trace", "req-b", "--limit", "1"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1 and "evaluation_completed" in lines[0]


def test_cli_reports_disabled_trail(capsys):
    assert cli_audit.main([]) == 1
    assert "disabled" in capsys.readouterr().err
