"""Database configuration, tenant routing and unit-of-work helpers."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.core.exceptions import StorageConflictException

logger = structlog.get_logger(__name__)

# SQLSTATEs raised by PostgreSQL when a concurrent writer won the race:
# exclusion_violation, serialization_failure, deadlock_detected
STORAGE_CONFLICT_SQLSTATES = frozenset({"23P01", "40001", "40P01"})


def to_async_url(url: str) -> str:
    """Convert sync PostgreSQL URL to async."""
    return url.replace("postgresql://", "postgresql+asyncpg://")


def create_clinic_engine(url: str) -> AsyncEngine:
    """Create an async engine with connection pooling for one database."""
    return create_async_engine(
        to_async_url(url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        max_overflow=20,
        pool_recycle=3600,
        isolation_level=settings.database_isolation_level,
        connect_args={
            "server_settings": {
                "application_name": settings.app_name,
            },
        },
    )


# Default engine, used when no per-clinic template is configured
engine: AsyncEngine = create_clinic_engine(settings.database_url)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Per-clinic engines, created lazily and reused across requests
_clinic_session_factories: dict[str, async_sessionmaker[AsyncSession]] = {}
_clinic_engines: dict[str, AsyncEngine] = {}


def get_clinic_session_factory(clinic_id: str) -> async_sessionmaker[AsyncSession]:
    """
    Resolve the session factory for a clinic database.

    Args:
        clinic_id: Tenant identifier from the authenticated principal

    Returns:
        Session factory bound to the clinic's database
    """
    if not settings.clinic_database_url_template:
        return AsyncSessionLocal

    factory = _clinic_session_factories.get(clinic_id)
    if factory is None:
        url = settings.clinic_database_url_template.format(clinic_id=clinic_id)
        clinic_engine = create_clinic_engine(url)
        factory = async_sessionmaker(clinic_engine, class_=AsyncSession, expire_on_commit=False)
        _clinic_engines[clinic_id] = clinic_engine
        _clinic_session_factories[clinic_id] = factory
        logger.info("clinic_engine_created", clinic_id=clinic_id)

    return factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def dispose_engines() -> None:
    """Close every pooled connection, default and per-clinic."""
    for clinic_engine in _clinic_engines.values():
        await clinic_engine.dispose()
    _clinic_engines.clear()
    _clinic_session_factories.clear()
    await engine.dispose()


def is_storage_conflict(exc: DBAPIError) -> bool:
    """Check whether a driver error means a concurrent writer got there first."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in STORAGE_CONFLICT_SQLSTATES


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block of reads and writes as one all-or-nothing transaction.

    Commits when the block exits normally and rolls back on any exception.
    Race losses reported by the database at write or commit time are
    re-raised as StorageConflictException.

    Args:
        session: Clinic database session

    Yields:
        The same session
    """
    try:
        yield session
        await session.commit()
    except DBAPIError as e:
        await session.rollback()
        if is_storage_conflict(e):
            logger.warning("storage_conflict_detected", error=str(e.orig))
            raise StorageConflictException() from e
        raise
    except Exception:
        await session.rollback()
        raise


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def clinic_routing_mode() -> str:
    """Report whether sessions are routed to per-clinic databases."""
    return "per_clinic" if settings.clinic_database_url_template else "shared"


def open_clinic_engine_count() -> int:
    """Number of per-clinic engines created so far."""
    return len(_clinic_engines)
