"""
Shared fixtures: settings, fake collaborators, in-memory ledger.
No test touches the network.
"""

import asyncio
import json
import os
import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

# Keep the JSONL audit trail out of the working tree
os.environ["AUDIT_LOG_DIR"] = ""

from config.settings import Settings  # noqa: E402
from db import create_ledger_engine, init_db  # noqa: E402
from schemas import (  # noqa: E402
    CATEGORY_NAMES,
    CategoryScore,
    EvaluationCategories,
    EvaluationResult,
)
from services.ledger_service import LedgerCache  # noqa: E402

TEST_SECRET = "test-secret-key-12345"


def build_result(overall=8, scores=None, improvements=None, error=None):
    scores = scores or {}
    return EvaluationResult(
        overall_score=overall,
        categories=EvaluationCategories(**{
            name: CategoryScore(score=scores.get(name, overall), feedback=f"{name} feedback")
            for name in CATEGORY_NAMES
        }),
        key_improvements=improvements if improvements is not None else ["Add a clear next step for the customer"],
        error=error,
    )


def engine_json(overall=8, tone=8, clarity="Clear and well structured.", resolution="Resolved the issue.", improvements=None):
    """Loose JSON body the way a classic chat model returns it."""
    return json.dumps({
        "overall_score": overall,
        "categories": {
            "tone_empathy": {"score": tone, "feedback": "Friendly tone."},
            "clarity_completeness": {"score": 8, "feedback": clarity},
            "standard_of_english": {"score": 9, "feedback": "Good grammar."},
            "problem_resolution": {"score": 7, "feedback": resolution},
        },
        "key_improvements": improvements if improvements is not None else ["Offer a follow-up call if the issue persists"],
    })


def mock_openai_client(content=None, side_effect=None):
    """AsyncOpenAI stand-in whose chat.completions.create returns `content`."""
    client = MagicMock()
    completion = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content, parsed=None, refusal=None))]
    )
    client.chat.completions.create = AsyncMock(return_value=completion, side_effect=side_effect)
    return client


def make_threads(agent_body="<p>Hi Sam,&nbsp;we have reset your password.</p>", customer_body="I cannot log in to my account at all."):
    return [
        {
            "id": 1,
            "type": "customer",
            "body": customer_body,
            "createdAt": "2024-05-01T09:00:00Z",
            "createdBy": {"id": 77, "type": "customer", "first": "Sam"},
        },
        {
            "id": 2,
            "type": "message",
            "body": agent_body,
            "createdAt": "2024-05-01T10:00:00Z",
            "createdBy": {"id": 12, "type": "user", "first": "Alex"},
        },
    ]


class FakeEngine:
    """Evaluation engine double. Optionally blocks until `gate` is set."""

    configured = True

    def __init__(self, result=None, error=None, gate=None):
        self.result = result or build_result()
        self.error = error
        self.gate = gate
        self.prompts = []
        self.classifications = []

    async def evaluate(self, prompt, tags=None, classification=None):
        self.prompts.append(prompt)
        self.classifications.append(classification)
        if self.gate is not None:
            while not self.gate.is_set():
                await asyncio.sleep(0.01)
        if self.error is not None:
            raise self.error
        return self.result

    @property
    def call_count(self):
        return len(self.prompts)


class FakeHelpScout:
    configured = True

    def __init__(self, threads=None, error=None):
        self.threads = threads if threads is not None else make_threads()
        self.error = error
        self.requested = []

    async def fetch_threads(self, conversation_id):
        self.requested.append(conversation_id)
        if self.error is not None:
            raise self.error
        return self.threads


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        openai_model="gpt-4",
        openai_timeout=0.2,
        helpscout_app_id="test-app-id",
        helpscout_app_secret="test-app-secret",
        webhook_secret=TEST_SECRET,
        request_timeout=5,
        log_level="WARNING",
    )


@pytest.fixture
def ledger():
    engine = create_ledger_engine("sqlite://")
    init_db(engine)
    yield LedgerCache(engine)
    engine.dispose()


@pytest.fixture
def gate():
    return threading.Event()
