"""Database Session Manager — async engine, per-request sessions and driver error translation.

Invariants:
    - A session that exits with an exception is rolled back before it is closed
    - RemessaError subclasses pass through untouched; they already carry an HTTP mapping
    - Driver and SQLAlchemy failures surface as DatabaseError (core/errors.py), never raw

Design Decisions:
    - Module-level db_manager populated by the FastAPI lifespan, not at import time
    - expire_on_commit=False: services return ORM rows after commit without a reload
    - SQLite URLs skip pool sizing (aiosqlite does not accept QueuePool arguments)
    - Translation is table-driven, most specific exception class first
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from remessa.core.errors import DatabaseError, RemessaError

logger = logging.getLogger(__name__)

# (exception class, message, operation) checked in order
_TRANSLATIONS: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "Integrity constraint violated", "commit"),
    (OperationalError, "Database unreachable or operation aborted", "execute"),
    (DBAPIError, "Database driver error", "query"),
    (SQLAlchemyError, "Database operation failed", "unknown"),
)


def translate_db_error(exc: SQLAlchemyError) -> DatabaseError:
    for exc_type, message, operation in _TRANSLATIONS:
        if isinstance(exc, exc_type):
            return DatabaseError(message, operation)
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    """Owns the async engine for the remittance store."""

    def __init__(self, database_url: str, pool_size: int = 20, max_overflow: int = 10):
        options: dict = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            options.update(pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600)
        self.engine = create_async_engine(database_url, **options)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except RemessaError:
            await session.rollback()
            raise
        except SQLAlchemyError as exc:
            await session.rollback()
            error = translate_db_error(exc)
            logger.error(
                f"Database failure during {error.operation}: {exc}",
                extra={"error_code": error.code},
            )
            raise error from exc
        finally:
            await session.close()

    async def health_check(self) -> bool:
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database readiness check failed: {e}")
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    if db_manager is None:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
