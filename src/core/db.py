from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings

redis = Redis.from_url(settings.redis_url, decode_responses=True)


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for the order store.

    Pool options apply to PostgreSQL only; SQLite (local runs, tests) uses
    the SQLAlchemy defaults.
    """
    kwargs: dict = {"echo": settings.app_env == "development"}
    if database_url.startswith("postgresql+asyncpg://"):
        kwargs.update(
            pool_size=5,
            max_overflow=10,
            connect_args={"statement_cache_size": 0},
        )
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
