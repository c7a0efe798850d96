"""
Database session configuration.

The parcel, rider, account and payment collections live in one relational
store reached through SQLAlchemy's asyncio engine (asyncpg in production,
aiosqlite for local runs and tests). Unique indexes on the models are the
store's only cross-request consistency guarantee.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from delivery_backend.app.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Keyword arguments for ``create_async_engine``; SQLite takes no pool sizing."""
    options: Dict[str, Any] = {"echo": settings.db_echo}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# expire_on_commit=False: engines return rows to the adapter after committing
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields one session per request; engines built on top of it commit
    their own writes.
    """
    async with AsyncSessionLocal() as session:
        yield session
