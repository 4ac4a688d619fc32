"""Standalone Sessions — one-off async sessions for scripts running outside FastAPI.

Invariants:
    - The engine created here lives only as long as the context block and is disposed on exit
    - expire_on_commit=False, matching the request-scoped sessions

Design Decisions:
    - Kept apart from infrastructure/database.py: scripts (seed) need no pooling,
      no error translation and no module-level singleton
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


@asynccontextmanager
async def standalone_session(database_url: str) -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(database_url)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with factory() as session:
            yield session
    finally:
        await engine.dispose()
