# /eirybot/models/session.py

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field

from eirybot.models.template import BotTemplate

# Session, event and transition models. Field aliases are the camelCase names
# stored in MongoDB and returned to the chat UI; they must stay stable so that
# existing stored sessions keep loading.

# Captured lead values are scalars keyed by variable name.
LeadValue = Union[str, int, float, bool, None]


class SessionStatus(str, Enum):
    ACTIVE = "active"
    HANDOFF_READY = "handoff_ready"
    COMPLETED = "completed"


class EventType(str, Enum):
    USER_MESSAGE = "user_message"
    BOT_MESSAGE = "bot_message"
    SYSTEM = "system"
    SYSTEM_HANDOFF = "system_handoff"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """A single demo conversation and its private copy of the composed bot."""
    session_id: str = Field(..., alias="sessionId")
    language: str = "es"
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    lead: Dict[str, LeadValue] = Field(default_factory=dict, description="Masked captured values")
    bot_instance: BotTemplate = Field(default_factory=BotTemplate, alias="botInstance")
    status: SessionStatus = SessionStatus.ACTIVE
    current_flow_id: Optional[str] = Field(default=None, alias="currentFlowId")
    current_step_index: Optional[int] = Field(default=None, alias="currentStepIndex")
    summary_text: Optional[str] = Field(default=None, alias="summaryText")
    handoff_ready: Optional[bool] = Field(default=None, alias="handoffReady")
    turn: Optional[int] = Field(default=None, description="Number of transitions applied so far")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)


class EventPayload(BaseModel):
    text: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class BotEvent(BaseModel):
    """Append-only conversation log record. Never updated after insert."""
    event_id: str = Field(..., alias="eventId")
    session_id: str = Field(..., alias="sessionId")
    ts: datetime = Field(default_factory=utc_now)
    type: EventType
    flow_id: Optional[str] = Field(default=None, alias="flowId")
    step_id: Optional[str] = Field(default=None, alias="stepId")
    turn: Optional[int] = Field(default=None, description="Session turn the event was posted at")
    payload: EventPayload = Field(default_factory=EventPayload)

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, frozen=True)


class FieldUpdate(BaseModel):
    key: str
    value: Any


class Transition(BaseModel):
    """
    The delta computed by the flow runner. Unset fields mean "leave as is";
    callers apply the delta to the stored session.
    """
    next_flow_id: Optional[str] = Field(default=None, alias="nextFlowId")
    next_step_index: Optional[int] = Field(default=None, alias="nextStepIndex")
    field_to_update: Optional[FieldUpdate] = Field(default=None, alias="fieldToUpdate")
    status: Optional[SessionStatus] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, frozen=True)
