"""Database session and engine setup."""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from crew_runtime.settings import settings

Base = declarative_base()


def build_engine(database_url: str, null_pool: bool = False) -> AsyncEngine:
    # Celery workers run every message in a fresh event loop, so pooled
    # connections cannot be reused between messages.
    options = {"poolclass": NullPool} if null_pool else {}
    return create_async_engine(database_url, echo=False, future=True, **options)


engine = build_engine(settings.database_url, settings.database_null_pool)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create all tables; used for SQLite development databases and tests."""
    import crew_runtime.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
