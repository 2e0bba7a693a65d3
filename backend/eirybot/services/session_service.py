# /eirybot/services/session_service.py

import uuid
import structlog
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from eirybot.config.settings import settings
from eirybot.engine.masker import mask_object, mask_pii
from eirybot.engine.merge import compose_bot
from eirybot.engine.runner import find_current_step, get_next_step
from eirybot.engine.text import build_context, render_handoff_summary
from eirybot.engine.validator import validate_template
from eirybot.models.api import CreateSessionRequest, EventRequest
from eirybot.models.session import BotEvent, EventType, Session, SessionStatus, Transition, utc_now
from eirybot.services.db_service import EVENTS_PAGE_SIZE, DatabaseService, db_service
from eirybot.services.errors import DuplicateEventError, SessionConflictError, SessionNotFoundError
from eirybot.services.template_catalog import TemplateCatalog, template_catalog
from eirybot.utils.metrics import events_counter, handoffs_counter, sessions_created_counter, transitions_counter

# This service owns the demo session lifecycle: composing a bot for a new
# session, logging chat events and applying the flow runner's transitions,
# and producing the handoff summary. Every free-text value is masked here,
# before it reaches storage.

log = structlog.get_logger(__name__)

# Event kinds that move the session cursor. Plain "system" events are only logged.
ADVANCING_EVENT_TYPES = (EventType.USER_MESSAGE, EventType.BOT_MESSAGE, EventType.SYSTEM_HANDOFF)


def next_status(current: Optional[str], proposed: Optional[str]) -> Optional[str]:
    """
    Status to store after a transition, or None to leave it unchanged.

    Sessions only move forward: active -> handoff_ready -> completed, or
    active -> completed.
    """
    if proposed is None or proposed == current:
        return None
    if current in (None, SessionStatus.ACTIVE):
        return proposed
    if current == SessionStatus.HANDOFF_READY and proposed == SessionStatus.COMPLETED:
        return proposed
    return None


def transition_to_updates(session: Session, transition: Transition) -> Dict[str, Any]:
    """
    Translate a runner transition into a MongoDB $set document.

    Captured values are masked; the runner hands them over raw.
    """
    updates: Dict[str, Any] = {}
    if transition.next_flow_id:
        updates["currentFlowId"] = transition.next_flow_id
    if transition.next_step_index is not None:
        updates["currentStepIndex"] = transition.next_step_index
    status = next_status(session.status, transition.status)
    if status:
        updates["status"] = status
    if transition.field_to_update:
        field = transition.field_to_update
        updates[f"lead.{field.key}"] = mask_pii(field.value) if isinstance(field.value, str) else field.value
    return updates


class SessionService:
    def __init__(self, db: DatabaseService, catalog: TemplateCatalog):
        self.db = db
        self.catalog = catalog

    async def _load_session(self, session_id: str) -> Session:
        session_doc = await self.db.get_session(session_id)
        if not session_doc:
            raise SessionNotFoundError(session_id)
        return Session.model_validate(session_doc)

    # ==================== Session Lifecycle ====================

    async def create_session(self, request: CreateSessionRequest) -> Session:
        """
        Compose a bot for the requested specialty and goal and store a new session.

        Args:
            request: Demo configuration (specialty, goal, language, demographics)

        Returns:
            The stored session, cursor at the start of the entry flow
        """
        specialty, goal = request.specialty, request.goal
        safe_demographics = mask_object(request.demographics) or {}

        bot = compose_bot(
            self.catalog.select_fragments(specialty, goal),
            routes={settings.router_step_id: self.catalog.resolve_goal_flow(goal, specialty)},
            variables={**safe_demographics, "specialty": specialty, "goal": goal},
        )

        for problem in validate_template(bot):
            log.warning(
                "Composed bot has a structural problem",
                specialty=specialty,
                goal=goal,
                error_code=problem["error_code"],
                detail=problem["message"],
            )

        now = utc_now()
        session = Session(
            session_id=str(uuid.uuid4()),
            language=request.language or settings.default_language,
            created_at=now,
            expires_at=now + timedelta(hours=settings.session_ttl_hours),
            lead=safe_demographics,
            bot_instance=bot,
            status=SessionStatus.ACTIVE,
            current_flow_id=settings.entry_flow_id,
            current_step_index=0,
            turn=0,
        )

        log.info("Creating session", session_id=session.session_id, specialty=specialty, goal=goal)
        await self.db.insert_session(session.model_dump(by_alias=True))
        sessions_created_counter.labels(specialty=specialty or "none", goal=goal or "none").inc()
        return session

    async def get_session_with_events(
        self,
        session_id: str,
        page: int = 1,
        limit: int = EVENTS_PAGE_SIZE
    ) -> Tuple[Session, List[BotEvent], Dict[str, int]]:
        """
        Fetch a session and one page of its conversation history.

        Returns:
            Tuple of (session, events oldest first, pagination info)

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self._load_session(session_id)
        event_docs, pagination = await self.db.get_events(session_id, page=page, limit=limit)
        return session, [BotEvent.model_validate(doc) for doc in event_docs], pagination

    async def update_language(self, session_id: str, language: Optional[str]) -> Dict[str, Any]:
        """Only the language of a session may be changed by the client."""
        updates: Dict[str, Any] = {}
        if language:
            updates["language"] = language
        if not updates:
            return updates
        if not await self.db.update_session(session_id, updates):
            raise SessionNotFoundError(session_id)
        return updates

    # ==================== Events ====================

    async def record_event(self, request: EventRequest) -> Dict[str, Any]:
        """
        Log a chat event and advance the session for cursor-moving events.

        The stored payload is masked. The runner receives the raw text (only
        for user messages) so conditions compare against what the user chose.

        A bot message is accepted once per visit to a step: one posted for a
        step other than the one under the cursor, or posted twice in the same
        turn, is reported as a duplicate and does not move the session. If the
        transition loses a race the event is removed again, so the client can
        retry it.

        Returns:
            {"nextState": applied $set document or None, "duplicate": bool}

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionConflictError: If the session moved while the transition was applied
        """
        session = await self._load_session(request.session_id)
        event_type = EventType(request.type)

        if event_type == EventType.BOT_MESSAGE and request.step_id:
            current_step = find_current_step(session)
            if current_step is not None and current_step.id != request.step_id:
                log.info(
                    "Bot message is not for the current step; skipping",
                    session_id=request.session_id,
                    step_id=request.step_id,
                    current_step_id=current_step.id,
                )
                events_counter.labels(type=event_type.value, status="duplicate").inc()
                return {"nextState": None, "duplicate": True}

        event = BotEvent(
            event_id=str(uuid.uuid4()),
            session_id=request.session_id,
            type=event_type,
            flow_id=request.flow_id,
            step_id=request.step_id,
            turn=session.turn or 0,
            payload=request.payload.model_copy(update={
                "text": mask_pii(request.payload.text),
                "data": mask_object(request.payload.data),
            }),
        )

        try:
            await self.db.insert_event(event.model_dump(by_alias=True, exclude_none=True))
        except DuplicateEventError:
            log.info("Bot message already logged for this turn; skipping", session_id=request.session_id, step_id=request.step_id)
            events_counter.labels(type=event_type.value, status="duplicate").inc()
            return {"nextState": None, "duplicate": True}

        events_counter.labels(type=event_type.value, status="recorded").inc()

        if event_type not in ADVANCING_EVENT_TYPES:
            return {"nextState": None, "duplicate": False}

        raw_input = request.payload.text if event_type == EventType.USER_MESSAGE else None
        transition = get_next_step(session, raw_input)
        updates = transition_to_updates(session, transition)

        if updates:
            updates["turn"] = (session.turn or 0) + 1
            expected = {
                "currentFlowId": session.current_flow_id,
                "currentStepIndex": session.current_step_index,
                "status": session.status,
                "turn": session.turn,
            }
            if not await self.db.update_session_if_cursor(request.session_id, expected, updates):
                log.warning("Session moved while applying transition", session_id=request.session_id)
                # A retry from the client must be able to log the event again
                await self.db.delete_event(event.event_id)
                raise SessionConflictError(request.session_id)

        transitions_counter.labels(status=updates.get("status", session.status)).inc()
        log.info(
            "Applied transition",
            session_id=request.session_id,
            event_type=event_type.value,
            flow_id=updates.get("currentFlowId"),
            step_index=updates.get("currentStepIndex"),
            status=updates.get("status"),
            captured=[key for key in updates if key.startswith("lead.")],
        )
        return {"nextState": updates, "duplicate": False}

    # ==================== Handoff ====================

    async def generate_handoff(self, session_id: str) -> str:
        """
        Render the handoff summary, store it masked and complete the session.

        Unknown placeholders render as "N/A".

        Returns:
            The masked summary text ('' if the bot has no summary template)
        """
        session = await self._load_session(session_id)
        bot = session.bot_instance

        summary = ""
        if bot.handoff and bot.handoff.summary_template:
            context = build_context(bot.variables, session.lead)
            summary = render_handoff_summary(bot.handoff.summary_template, session.language, context)
        masked_summary = mask_pii(summary)

        await self.db.update_session(session_id, {
            "status": SessionStatus.COMPLETED.value,
            "summaryText": masked_summary,
            "handoffReady": True,
        })
        handoffs_counter.labels(status="generated" if masked_summary else "empty").inc()
        log.info("Handoff summary generated", session_id=session_id)
        return masked_summary


# Globally accessible instance
session_service = SessionService(db_service, template_catalog)
