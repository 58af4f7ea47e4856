from fastapi import HTTPException, Request, status

from cancheo_engine.schemas import User
from cancheo_engine.services.engine import EngagementEngine


def get_engine(request: Request) -> EngagementEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engagement engine is not running",
        )
    return engine


def require_session_user(request: Request) -> User:
    """Resolve the session user; inbox routes make no sense without one."""

    user = get_engine(request).state.current_user
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active session",
        )
    return user
