# backend/tests/unit/test_session_service.py

import pytest
from unittest.mock import AsyncMock

from eirybot.models.api import CreateSessionRequest, EventRequest
from eirybot.models.session import utc_now
from eirybot.services.errors import SessionConflictError, SessionNotFoundError
from eirybot.services.session_service import next_status


async def _create(service, **config):
    config.setdefault("specialty", "dental")
    config.setdefault("goal", "faqs")
    return await service.create_session(CreateSessionRequest(**config))


async def _event(service, session_id, type_, text=None, step_id=None, flow_id=None):
    request = EventRequest(
        sessionId=session_id,
        type=type_,
        payload={"text": text} if text is not None else {},
        stepId=step_id,
        flowId=flow_id,
    )
    return await service.record_event(request)


@pytest.mark.parametrize("current, proposed, expected", [
    ("active", "handoff_ready", "handoff_ready"),
    ("active", "completed", "completed"),
    ("handoff_ready", "completed", "completed"),
    ("handoff_ready", "active", None),
    ("completed", "active", None),
    ("completed", "handoff_ready", None),
    ("active", "active", None),
    ("active", None, None),
])
def test_status_only_moves_forward(current, proposed, expected):
    assert next_status(current, proposed) == expected


@pytest.mark.asyncio
async def test_create_session_masks_demographics_and_composes_bot(service, fake_db):
    session = await _create(service, language="en", clinicName="Acme", receptionEmail="front@acme.com")

    stored = fake_db.sessions[session.session_id]
    assert stored["lead"] == {"clinicName": "Acme", "receptionEmail": "[EMAIL]"}
    assert stored["currentFlowId"] == "main"
    assert stored["currentStepIndex"] == 0
    assert stored["status"] == "active"
    assert stored["language"] == "en"
    assert stored["expiresAt"] > stored["createdAt"]

    bot = session.bot_instance
    assert bot.variables["clinicName"] == "Acme"
    assert bot.variables["receptionEmail"] == "[EMAIL]"
    assert bot.variables["goal"] == "faqs"
    router = next(s for s in bot.flows[0].steps if s.id == "goal_router")
    assert router.next == "flow_faqs"


@pytest.mark.asyncio
async def test_sessions_get_independent_bots(service):
    first = await _create(service, clinicName="First")
    second = await _create(service, clinicName="Second")
    assert first.session_id != second.session_id
    assert first.bot_instance.variables["clinicName"] == "First"
    assert second.bot_instance.variables["clinicName"] == "Second"


@pytest.mark.asyncio
async def test_default_language_is_used(service):
    session = await _create(service)
    assert session.language == "es"


@pytest.mark.asyncio
async def test_full_conversation_to_handoff(service, fake_db):
    session = await _create(service, clinicName="Acme")
    sid = session.session_id

    result = await _event(service, sid, "bot_message", step_id="welcome", flow_id="main")
    assert result == {"nextState": {"currentFlowId": "main", "currentStepIndex": 1, "turn": 1}, "duplicate": False}

    result = await _event(service, sid, "bot_message", step_id="goal_router", flow_id="main")
    assert result["nextState"] == {"currentFlowId": "flow_faqs", "currentStepIndex": 0, "turn": 2}

    result = await _event(service, sid, "user_message", text="human", step_id="faq_menu")
    assert result["nextState"] == {
        "currentFlowId": "flow_handoff",
        "currentStepIndex": 0,
        "lead.reason": "human",
        "turn": 3,
    }

    await _event(service, sid, "user_message", text="Alice", step_id="ask_name")
    result = await _event(service, sid, "user_message", text="alice@mail.com", step_id="ask_contact")
    assert result["nextState"]["lead.contact"] == "[EMAIL]"

    result = await _event(service, sid, "bot_message", step_id="handoff", flow_id="flow_handoff")
    assert result["nextState"]["status"] == "handoff_ready"

    summary = await service.generate_handoff(sid)
    assert summary == (
        "Nuevo paciente para Acme. Nombre: Alice. Contacto: [EMAIL]. "
        "Objetivo: faqs. Motivo: human. Seguro: N/A."
    )

    stored = fake_db.sessions[sid]
    assert stored["status"] == "completed"
    assert stored["handoffReady"] is True
    assert stored["summaryText"] == summary
    assert stored["lead"]["name"] == "Alice"

    # The raw email never reaches the event log
    texts = [e["payload"].get("text") for e in fake_db.events]
    assert "alice@mail.com" not in texts
    assert "[EMAIL]" in texts


@pytest.mark.asyncio
async def test_duplicate_bot_message_does_not_move_cursor(service, fake_db):
    session = await _create(service)
    sid = session.session_id

    await _event(service, sid, "bot_message", step_id="welcome")
    result = await _event(service, sid, "bot_message", step_id="welcome")

    assert result == {"nextState": None, "duplicate": True}
    assert fake_db.sessions[sid]["currentStepIndex"] == 1
    assert len(fake_db.events) == 1


@pytest.mark.asyncio
async def test_system_events_are_logged_without_advancing(service, fake_db):
    session = await _create(service)
    result = await _event(service, session.session_id, "system", text="widget opened")
    assert result == {"nextState": None, "duplicate": False}
    assert fake_db.sessions[session.session_id]["currentStepIndex"] == 0
    assert len(fake_db.events) == 1


@pytest.mark.asyncio
async def test_event_for_missing_session_is_not_logged(service, fake_db):
    with pytest.raises(SessionNotFoundError):
        await _event(service, "missing", "user_message", text="hola")
    assert fake_db.events == []


@pytest.mark.asyncio
async def test_same_turn_bot_message_is_a_duplicate(service, fake_db):
    session = await _create(service)
    sid = session.session_id
    # The same bot message already logged by a concurrent request
    await fake_db.insert_event({
        "eventId": "twin", "sessionId": sid, "type": "bot_message",
        "stepId": "welcome", "turn": 0, "ts": utc_now(),
    })

    result = await _event(service, sid, "bot_message", step_id="welcome")
    assert result == {"nextState": None, "duplicate": True}
    assert fake_db.sessions[sid]["currentStepIndex"] == 0


@pytest.mark.asyncio
async def test_revisited_step_advances_again(service, fake_db):
    session = await _create(service, goal="faqs")
    sid = session.session_id
    await _event(service, sid, "bot_message", step_id="welcome")
    await _event(service, sid, "bot_message", step_id="goal_router")

    for _ in range(2):
        result = await _event(service, sid, "user_message", text="hours", step_id="faq_menu")
        assert result["nextState"]["currentFlowId"] == "flow_faq_hours"

        result = await _event(service, sid, "bot_message", step_id="hours", flow_id="flow_faq_hours")
        assert result["duplicate"] is False
        assert result["nextState"]["currentFlowId"] == "flow_faqs"
        assert result["nextState"]["currentStepIndex"] == 0

    stored = fake_db.sessions[sid]
    assert (stored["currentFlowId"], stored["currentStepIndex"]) == ("flow_faqs", 0)
    assert stored["turn"] == 6
    assert [e["stepId"] for e in fake_db.events if e["type"] == "bot_message"].count("hours") == 2


@pytest.mark.asyncio
async def test_bot_message_for_another_step_does_not_move_cursor(service, fake_db):
    session = await _create(service)
    result = await _event(service, session.session_id, "bot_message", step_id="goal_router")
    assert result == {"nextState": None, "duplicate": True}
    assert fake_db.sessions[session.session_id]["currentStepIndex"] == 0
    assert fake_db.events == []


@pytest.mark.asyncio
async def test_concurrent_move_is_reported_as_conflict(service, fake_db, mocker):
    session = await _create(service)
    mocker.patch.object(fake_db, "update_session_if_cursor", new_callable=AsyncMock, return_value=False)

    with pytest.raises(SessionConflictError):
        await _event(service, session.session_id, "bot_message", step_id="welcome")

    assert fake_db.events == []
    assert fake_db.sessions[session.session_id]["currentStepIndex"] == 0


@pytest.mark.asyncio
async def test_retry_after_conflict_applies_the_transition(service, fake_db, mocker):
    session = await _create(service)
    sid = session.session_id
    mocker.patch.object(fake_db, "update_session_if_cursor", new_callable=AsyncMock, return_value=False)
    with pytest.raises(SessionConflictError):
        await _event(service, sid, "bot_message", step_id="welcome")
    mocker.stopall()

    result = await _event(service, sid, "bot_message", step_id="welcome")
    assert result["duplicate"] is False
    assert result["nextState"]["currentStepIndex"] == 1
    assert len(fake_db.events) == 1


@pytest.mark.asyncio
async def test_user_message_retried_after_conflict_is_logged_once(service, fake_db, mocker):
    session = await _create(service)
    sid = session.session_id
    mocker.patch.object(fake_db, "update_session_if_cursor", new_callable=AsyncMock, return_value=False)
    with pytest.raises(SessionConflictError):
        await _event(service, sid, "user_message", text="hola")
    mocker.stopall()

    await _event(service, sid, "user_message", text="hola")
    assert [e["payload"]["text"] for e in fake_db.events] == ["hola"]


@pytest.mark.asyncio
async def test_stale_cursor_does_not_overwrite(service, fake_db):
    session = await _create(service)
    sid = session.session_id
    original_get = fake_db.get_session

    async def get_then_move(session_id):
        doc = await original_get(session_id)
        fake_db.sessions[session_id]["currentStepIndex"] = 1
        return doc

    fake_db.get_session = get_then_move
    with pytest.raises(SessionConflictError):
        await _event(service, sid, "bot_message", step_id="welcome")
    assert fake_db.sessions[sid]["currentStepIndex"] == 1
    assert fake_db.events == []


@pytest.mark.asyncio
async def test_completed_session_status_is_not_reverted(service, fake_db):
    session = await _create(service)
    sid = session.session_id
    fake_db.sessions[sid]["status"] = "completed"

    result = await _event(service, sid, "bot_message", step_id="welcome")
    assert "status" not in result["nextState"]
    assert fake_db.sessions[sid]["status"] == "completed"


@pytest.mark.asyncio
async def test_get_session_with_events_in_order(service):
    session = await _create(service)
    await _event(service, session.session_id, "bot_message", step_id="welcome")
    await _event(service, session.session_id, "user_message", text="hola")

    loaded, events, pagination = await service.get_session_with_events(session.session_id)
    assert loaded.session_id == session.session_id
    assert [e.type for e in events] == ["bot_message", "user_message"]
    assert pagination == {"page": 1, "limit": 100, "total": 2, "pages": 1}


@pytest.mark.asyncio
async def test_get_missing_session(service):
    with pytest.raises(SessionNotFoundError):
        await service.get_session_with_events("missing")


@pytest.mark.asyncio
async def test_update_language(service, fake_db):
    session = await _create(service)
    assert await service.update_language(session.session_id, "en") == {"language": "en"}
    assert fake_db.sessions[session.session_id]["language"] == "en"
    assert await service.update_language(session.session_id, None) == {}

    with pytest.raises(SessionNotFoundError):
        await service.update_language("missing", "en")


@pytest.mark.asyncio
async def test_handoff_for_bot_without_summary_template(service, fake_db):
    session = await _create(service)
    fake_db.sessions[session.session_id]["botInstance"]["handoff"] = None

    assert await service.generate_handoff(session.session_id) == ""
    assert fake_db.sessions[session.session_id]["status"] == "completed"


@pytest.mark.asyncio
async def test_handoff_summary_is_masked(service, fake_db):
    session = await _create(service, goal="appointments", clinicName="Acme")
    fake_db.sessions[session.session_id]["lead"]["name"] = "call me at 555 123 4567"

    summary = await service.generate_handoff(session.session_id)
    assert "555 123 4567" not in summary
    assert "[PHONE]" in summary
