import copy
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock

# Load the test environment FIRST, before any eirybot imports, so the
# settings object is built from it.
load_dotenv(dotenv_path=Path(__file__).parent / ".env.test")

from eirybot.main import app  # noqa: E402
from eirybot.models.template import BotTemplate, Flow, FlowStep  # noqa: E402
from eirybot.services.db_service import EVENTS_PAGE_SIZE, paginate  # noqa: E402
from eirybot.services.errors import DuplicateEventError  # noqa: E402
from eirybot.services.session_service import SessionService, session_service  # noqa: E402
from eirybot.services.template_catalog import TemplateCatalog  # noqa: E402


class InMemoryDatabase:
    """
    Stand-in for DatabaseService with the same async methods, backed by dicts.
    Mirrors the Mongo semantics the service relies on: dotted $set keys,
    a missing field matching None, and the one-bot-message-per-step-per-turn index.
    """

    def __init__(self):
        self.sessions = {}
        self.events = []

    async def create_indexes(self):
        return None

    async def health_check(self):
        return True

    async def insert_session(self, session_doc):
        self.sessions[session_doc["sessionId"]] = copy.deepcopy(session_doc)

    async def get_session(self, session_id):
        doc = self.sessions.get(session_id)
        return copy.deepcopy(doc) if doc else None

    def _apply(self, doc, updates):
        for key, value in updates.items():
            if "." in key:
                parent, child = key.split(".", 1)
                doc.setdefault(parent, {})[child] = value
            else:
                doc[key] = value

    async def update_session(self, session_id, updates):
        doc = self.sessions.get(session_id)
        if doc is None:
            return False
        self._apply(doc, updates)
        return True

    async def update_session_if_cursor(self, session_id, expected, updates):
        doc = self.sessions.get(session_id)
        if doc is None or any(doc.get(key) != value for key, value in expected.items()):
            return False
        self._apply(doc, updates)
        return True

    async def insert_event(self, event_doc):
        if event_doc.get("type") == "bot_message" and event_doc.get("stepId"):
            key = (event_doc["sessionId"], event_doc["stepId"], event_doc.get("turn"))
            for existing in self.events:
                if existing["type"] == "bot_message" and (
                    existing["sessionId"], existing.get("stepId"), existing.get("turn")
                ) == key:
                    raise DuplicateEventError(event_doc["sessionId"], event_doc["stepId"])
        self.events.append(copy.deepcopy(event_doc))

    async def delete_event(self, event_id):
        self.events = [e for e in self.events if e["eventId"] != event_id]

    async def get_events(self, session_id, page=1, limit=EVENTS_PAGE_SIZE):
        matching = sorted(
            (copy.deepcopy(e) for e in self.events if e["sessionId"] == session_id),
            key=lambda e: e["ts"],
        )
        skip = (page - 1) * limit
        return matching[skip:skip + limit], paginate(page, limit, len(matching))


@pytest.fixture
def fake_db():
    return InMemoryDatabase()


@pytest.fixture
def service(fake_db):
    """A SessionService wired to the in-memory store and the packaged templates."""
    catalog = TemplateCatalog()
    catalog.load_templates()
    return SessionService(fake_db, catalog)


@pytest.fixture(scope="function")
def test_client(mocker, fake_db):
    """
    Provides a TestClient for API integration tests.
    The global session service is pointed at the in-memory store and no
    MongoDB connection is attempted on startup.
    """
    mocker.patch("eirybot.utils.lifecycle.db_service.create_indexes", new_callable=AsyncMock)
    mocker.patch("eirybot.routes.public.db_service.health_check", new_callable=AsyncMock, return_value=True)
    mocker.patch.object(session_service, "db", fake_db)

    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_bot():
    """Returns a builder for composed bots from (flow_id, [step dicts]) pairs."""
    def _make_bot(*flows):
        return BotTemplate(
            flows=[
                Flow(id=flow_id, steps=[FlowStep(**step) for step in steps])
                for flow_id, steps in flows
            ]
        )
    return _make_bot
