# /eirybot/models/api.py

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, Optional
from datetime import datetime, timezone

from eirybot.config.settings import settings
from eirybot.models.session import EventPayload, EventType, LeadValue

# This file contains Pydantic models that define the structure of data for
# API requests and responses, ensuring type safety and validation.


def _check_language(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in settings.supported_languages:
        raise ValueError(f"Unsupported language '{v}'. Supported: {settings.supported_languages}")
    return v


class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str


class CreateSessionRequest(BaseModel):
    """
    Demo configuration submitted by the visitor.

    Any field besides specialty, goal and language is a demographic value
    (clinicName, receptionEmail, ...) that seeds the bot variables and,
    masked, the session lead.
    """
    specialty: Optional[str] = None
    goal: Optional[str] = None
    language: Optional[str] = None

    model_config = ConfigDict(extra="allow")
    __pydantic_extra__: Dict[str, LeadValue] = Field(init=False)

    @field_validator("language")
    @classmethod
    def language_must_be_supported(cls, v):
        return _check_language(v)

    @property
    def demographics(self) -> Dict[str, LeadValue]:
        return dict(self.model_extra or {})


class UpdateSessionRequest(BaseModel):
    language: Optional[str] = None

    @field_validator("language")
    @classmethod
    def language_must_be_supported(cls, v):
        return _check_language(v)


class EventRequest(BaseModel):
    """A chat event posted by the UI. `payload.text` is raw and masked server side."""
    session_id: str = Field(..., alias="sessionId", min_length=1)
    type: EventType
    payload: EventPayload = Field(default_factory=EventPayload)
    flow_id: Optional[str] = Field(default=None, alias="flowId")
    step_id: Optional[str] = Field(default=None, alias="stepId")

    model_config = ConfigDict(populate_by_name=True)


class HandoffRequest(BaseModel):
    session_id: str = Field(..., alias="sessionId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)
