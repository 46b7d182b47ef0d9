"""
Database engine and session management
"""
from typing import Any, Tuple

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL uses an async driver"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver in DATABASE__URL")

    async_driver = driver_map[drivername]
    return str(url.set(drivername=async_driver))


def build_session_factory(
    database_url: str, **engine_kwargs: Any
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Engine plus session factory for short-lived contexts (workers, tests)."""
    engine_kwargs.setdefault("poolclass", NullPool)
    new_engine = create_async_engine(_build_async_url(database_url), **engine_kwargs)
    return new_engine, async_sessionmaker(bind=new_engine, expire_on_commit=False)


engine = create_async_engine(
    _build_async_url(settings.database.url),
    echo=settings.DEBUG,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def check_database(bind=None) -> bool:
    """True when a trivial query round-trips."""
    try:
        async with (bind or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return False
    return True


async def create_tables(bind=None):
    """Create every table known to the models metadata"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

