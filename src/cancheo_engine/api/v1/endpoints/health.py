from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from cancheo_engine.api.dependencies import get_engine
from cancheo_engine.services.engine import EngagementEngine


router = APIRouter()


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/engine", summary="Engagement engine status")
async def engine_health(engine: EngagementEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Report the session, inbox, ticker and counter state of the engine."""

    return engine.health()
