from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from cancheo_engine.api.dependencies import get_engine, require_session_user
from cancheo_engine.schemas import Notification, User
from cancheo_engine.services.engine import EngagementEngine
from cancheo_engine.services.notifications import CommandOutcome

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class InboxResponse(BaseModel):
    notifications: list[Notification]
    unread_count: int = Field(..., description="Unread notifications in the inbox")


class InboxCommandResponse(BaseModel):
    outcome: CommandOutcome
    unread_count: int


def _inbox(engine: EngagementEngine) -> InboxResponse:
    dispatcher = engine.dispatcher
    return InboxResponse(notifications=list(dispatcher.inbox), unread_count=dispatcher.unread_count)


def _command_response(engine: EngagementEngine, outcome: CommandOutcome) -> InboxCommandResponse:
    if outcome == "compensated":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inbox change could not be saved and was rolled back",
        )
    return InboxCommandResponse(outcome=outcome, unread_count=engine.dispatcher.unread_count)


@router.get("", response_model=InboxResponse, status_code=status.HTTP_200_OK)
async def list_notifications(
    _: User = Depends(require_session_user),
    engine: EngagementEngine = Depends(get_engine),
) -> InboxResponse:
    """Return the session inbox, newest first."""

    return _inbox(engine)


@router.post("/read-all", response_model=InboxCommandResponse)
async def mark_all_notifications_read(
    _: User = Depends(require_session_user),
    engine: EngagementEngine = Depends(get_engine),
) -> InboxCommandResponse:
    outcome = await engine.dispatcher.mark_all_read()
    return _command_response(engine, outcome)


@router.post("/{notification_id}/dismiss", response_model=InboxCommandResponse)
async def dismiss_notification(
    notification_id: int,
    _: User = Depends(require_session_user),
    engine: EngagementEngine = Depends(get_engine),
) -> InboxCommandResponse:
    outcome = await engine.dispatcher.dismiss(notification_id)
    return _command_response(engine, outcome)


@router.delete("", response_model=InboxCommandResponse)
async def clear_notifications(
    _: User = Depends(require_session_user),
    engine: EngagementEngine = Depends(get_engine),
) -> InboxCommandResponse:
    outcome = await engine.dispatcher.clear_all()
    return _command_response(engine, outcome)
