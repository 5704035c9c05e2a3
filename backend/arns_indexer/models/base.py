from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from arns_indexer.config import get_settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_engine(database_url: str, echo: bool = False, null_pool: bool = False) -> AsyncEngine:
    """Create an async engine.

    Celery tasks each run their own event loop, so workers pass
    ``null_pool=True`` to avoid sharing pooled connections across loops.
    """
    kwargs = {"echo": echo, "future": True}
    if null_pool:
        kwargs["poolclass"] = NullPool
    return create_async_engine(database_url, **kwargs)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


settings = get_settings()

engine = build_engine(settings.database_url, echo=settings.debug)

async_session_maker = build_session_maker(engine)


def get_session_maker() -> async_sessionmaker:
    return async_session_maker


async def init_db(bind: AsyncEngine = engine):
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
