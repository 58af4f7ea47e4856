from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from cancheo_engine.core.settings import settings
from cancheo_engine.db.base import Base

engine: AsyncEngine = create_async_engine(settings.database_url, future=True)
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_tables(target: AsyncEngine | None = None) -> None:
    """Create the document tables when they are missing."""

    import cancheo_engine.models  # noqa: F401

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
