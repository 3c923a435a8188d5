"""
Mindak Reservations Backend — Database Session Management
=========================================================

What:  Async SQLAlchemy engine, session factory, declarative base and the
       FastAPI session dependency.
How:   One async engine with connection pooling; one session per request that
       commits on success and rolls back on any error.
Who:   Routes receive sessions via `Depends(get_db_session)`; services only
       ever `flush()`, so every write of a request lands in one transaction.

Transaction boundary:
    A status transition updates `reservations.status` and inserts a
    `reservation_status_history` row. Both statements run in the request
    session and are committed together by `get_db_session`, or rolled back
    together when anything raises.
"""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mindak.config import settings


def build_engine(url: str) -> AsyncEngine:
    """
    Create the async engine for `url`.

    Pool sizing only applies to server databases; SQLite (used by the test
    suite) manages its own pool.
    """
    kwargs: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(url, **kwargs)


# ── Engine Configuration ──────────────────────────────────────────────────
engine = build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay loaded after commit so response
# models can be built from ORM objects outside the transaction
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, which Alembic reads for migrations.
    """
    pass


def utcnow() -> datetime:
    """Timezone-aware UTC now; column default for every timestamp."""
    return datetime.now(timezone.utc)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction and re-raises
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/reservations")
        async def list_reservations(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Closes all pooled connections; called during application shutdown."""
    await engine.dispose()
