"""Shared fixtures for the lead qualification tests."""

import asyncio
import json
import os

import pytest
from fastapi.testclient import TestClient

# Settings are read at import time by api.main; set them first.
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("CHAT_RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("CRM_ENABLED", "false")
os.environ.setdefault("TWILIO_ENABLED", "false")

from api.channels.base import ChannelResponse  # noqa: E402
from config.settings import get_settings  # noqa: E402
from database.session import close_db, get_session_factory, init_db  # noqa: E402
from lead_scoring.form_config import normalize_config  # noqa: E402
from llm.providers.openai_provider import Completion, ToolCall  # noqa: E402

ADMIN_HEADERS = {"X-API-Key": "test-admin-key"}


# ── Fakes ─────────────────────────────────────────────

class ScriptedProvider:
    """Completion provider that replays canned turns and records every call."""

    def __init__(self, *turns):
        self.turns = list(turns)
        self.calls = []

    async def complete(self, messages, tools=None):
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self.turns:
            return Completion(text="Ok.")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn


def tool_call(name, call_id="call_1", **arguments):
    return ToolCall(id=call_id, name=name, arguments=arguments, raw_arguments=json.dumps(arguments))


class FakeSmsSender:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def notify_staff(self, content):
        self.sent.append(content)
        if self.fail:
            return ChannelResponse(success=False, error="undeliverable")
        return ChannelResponse(success=True, message_id=f"SM{len(self.sent)}")


class FakeCrmClient:
    def __init__(self, fail=False):
        self.fail = fail
        self.contacts = []

    async def upsert_contact(self, contact):
        self.contacts.append(contact)
        if self.fail:
            raise RuntimeError("CRM unavailable")
        return "contact-123"


# ── Configs ───────────────────────────────────────────

@pytest.fixture
def scenario_config():
    """name(text), budget(select), challenge(text); warm at 5, hot at 10."""
    return normalize_config({
        "questions": [
            {"id": "name", "order": 1, "title": "Your name?", "type": "text", "category": "contact"},
            {
                "id": "budget", "order": 2, "title": "Budget?", "type": "select", "category": "budget",
                "options": [
                    {"value": "low", "label": "Low", "points": 1},
                    {"value": "mid", "label": "Mid", "points": 5},
                    {"value": "high", "label": "High", "points": 10},
                ],
            },
            {"id": "challenge", "order": 3, "title": "Main challenge?", "type": "text", "category": "pain"},
        ],
        "thresholds": {"warm": 5, "hot": 10},
    })


@pytest.fixture
def contact_config():
    """Contact questions plus a select with a conditional follow-up."""
    return normalize_config({
        "questions": [
            {"id": "nome", "order": 1, "title": "Nome?", "type": "text", "crmFieldMapping": "full_name"},
            {"id": "telefone", "order": 2, "title": "Telefone?", "type": "tel"},
            {
                "id": "localizacao", "order": 3, "title": "Onde?", "type": "select",
                "crmFieldMapping": "location",
                "options": [
                    {"value": "EUA", "label": "Nos EUA", "points": 10},
                    {"value": "Brasil", "label": "No Brasil", "points": 4},
                ],
                "conditionalField": {
                    "id": "cidadeEstado", "title": "Cidade?", "showWhen": "EUA",
                    "crmFieldMapping": "city",
                },
            },
        ],
        "thresholds": {"hot": 10, "warm": 5},
    })


# ── Database ──────────────────────────────────────────

@pytest.fixture
def db_run(tmp_path):
    """Run ``fn(session_factory)`` against a fresh SQLite database, in one event loop."""
    def _run(fn):
        async def _main():
            await init_db(f"sqlite:///{tmp_path / 'unit.db'}")
            try:
                return await fn(get_session_factory())
            finally:
                await close_db()
        return asyncio.run(_main())
    return _run


# ── API ───────────────────────────────────────────────

@pytest.fixture
def client(tmp_path, monkeypatch):
    """FastAPI test client on a throwaway database."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    get_settings.cache_clear()
    from api.main import app
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


@pytest.fixture
def services(client):
    """Service container of the running test app, for injecting fakes."""
    from api.services import get_services
    return get_services()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)
