# /eirybot/routes/demo.py

import structlog
from fastapi import APIRouter, HTTPException, Query, Request, status

from eirybot.config.settings import settings
from eirybot.models.api import (
    APIResponse,
    CreateSessionRequest,
    EventRequest,
    HandoffRequest,
    UpdateSessionRequest,
)
from eirybot.services.db_service import EVENTS_MAX_PAGE_SIZE, EVENTS_PAGE_SIZE
from eirybot.services.errors import SessionConflictError, SessionNotFoundError
from eirybot.services.session_service import session_service
from eirybot.utils.rate_limiter import limiter

# Endpoints used by the demo chat UI: create a session from the visitor's
# configuration, poll it, post chat events, and request the handoff summary.
# Every route is a thin wrapper around the session service.

router = APIRouter(
    prefix="/demo",
    tags=["Demo"]
)

log = structlog.get_logger(__name__)


def _not_found(e: SessionNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session not found: {e.session_id}")


@router.post("/sessions", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def create_session(request: Request, config: CreateSessionRequest):
    """Compose a bot for the chosen specialty and goal and start a session."""
    try:
        session = await session_service.create_session(config)
    except Exception as e:
        log.error("Error creating session", error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create session")

    return APIResponse(
        success=True,
        message="Session created",
        data={"sessionId": session.session_id},
        version=settings.api_version
    )


@router.get("/sessions/{session_id}", response_model=APIResponse)
async def get_session(
    session_id: str,
    page: int = Query(1, ge=1, description="Events page number"),
    limit: int = Query(EVENTS_PAGE_SIZE, ge=1, le=EVENTS_MAX_PAGE_SIZE, description="Events per page"),
):
    """Return the session and one page of its events, oldest first."""
    try:
        session, events, pagination = await session_service.get_session_with_events(
            session_id, page=page, limit=limit
        )
    except SessionNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        log.error("Error fetching session", session_id=session_id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch session")

    return APIResponse(
        success=True,
        message="Session retrieved",
        data={
            "session": session.model_dump(mode="json", by_alias=True),
            "events": [event.model_dump(mode="json", by_alias=True, exclude_none=True) for event in events],
            "pagination": pagination,
        },
        version=settings.api_version
    )


@router.patch("/sessions/{session_id}", response_model=APIResponse)
async def update_session(session_id: str, update: UpdateSessionRequest):
    """Only the session language can be changed."""
    try:
        updates = await session_service.update_language(session_id, update.language)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        log.error("Error updating session", session_id=session_id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update session")

    return APIResponse(
        success=True,
        message="Session updated",
        data={"updated": updates},
        version=settings.api_version
    )


@router.post("/events", response_model=APIResponse)
@limiter.limit(f"{settings.event_rate_limit_per_minute}/minute")
async def post_event(request: Request, event: EventRequest):
    """Log a chat event and advance the session cursor."""
    try:
        result = await session_service.record_event(event)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except SessionConflictError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Session was updated concurrently; reload it and retry"
        )
    except Exception as e:
        log.error("Error saving event", session_id=event.session_id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to save event")

    return APIResponse(
        success=True,
        message="Duplicate event ignored" if result["duplicate"] else "Event recorded",
        data=result,
        version=settings.api_version
    )


@router.post("/handoff", response_model=APIResponse)
async def handoff(body: HandoffRequest):
    """Generate the handoff summary and complete the session."""
    try:
        summary = await session_service.generate_handoff(body.session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        log.error("Error in handoff", session_id=body.session_id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed handoff")

    return APIResponse(
        success=True,
        message="Handoff summary generated",
        data={"summary": summary},
        version=settings.api_version
    )
