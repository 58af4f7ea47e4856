from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from cancheo_engine import __version__
from cancheo_engine.core.settings import settings
from cancheo_engine.db.session import async_session, create_tables
from .api.routes import api_router
from .core.logging import configure_logging
from .scheduling import EngagementJobScheduler
from .services.engine import EngagementEngine
from .services.session import FileRememberedSession
from .services.store import SqlAlchemyEventStore


APP_VERSION = __version__


def _build_engine() -> EngagementEngine:
    schedule_path = Path(settings.engagement_job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path.cwd() / schedule_path
    return EngagementEngine(
        SqlAlchemyEventStore(session_factory=async_session),
        remembered=FileRememberedSession(settings.remembered_session_path),
        job_scheduler=EngagementJobScheduler(config_path=schedule_path),
    )


def create_app(engine: EngagementEngine | None = None) -> FastAPI:
    """Application factory for the Cancheo engagement service."""
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
        json_output=settings.log_json,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is None:
            await create_tables()
            active = _build_engine()
        else:
            active = engine
        app.state.engine = active

        user = await active.start()
        if user is not None:
            logger.info("Engagement engine started with restored session", user_id=user.id)
        else:
            logger.info("Engagement engine started without a session", reason="no remembered user")

        try:
            yield
        finally:
            await active.stop()
            logger.info("Engagement engine stopped")

    app = FastAPI(
        title="Cancheo Engagement Engine",
        version=APP_VERSION,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
