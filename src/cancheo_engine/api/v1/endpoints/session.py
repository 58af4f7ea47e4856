from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from cancheo_engine.api.dependencies import get_engine
from cancheo_engine.core.errors import RecordNotFoundError
from cancheo_engine.services.engine import EngagementEngine

router = APIRouter(prefix="/session", tags=["Session"])


class LoginRequest(BaseModel):
    user_id: str


class SessionResponse(BaseModel):
    user_id: str | None
    unread_count: int = 0


@router.post("/login", response_model=SessionResponse)
async def login(payload: LoginRequest, engine: EngagementEngine = Depends(get_engine)) -> SessionResponse:
    try:
        user = await engine.login(payload.user_id)
    except RecordNotFoundError as error:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    return SessionResponse(user_id=user.id, unread_count=engine.dispatcher.unread_count)


@router.post("/logout", response_model=SessionResponse)
async def logout(engine: EngagementEngine = Depends(get_engine)) -> SessionResponse:
    await engine.logout()
    return SessionResponse(user_id=None)
