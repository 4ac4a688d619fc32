"""Database Package — declarative Base and standalone sessions for scripts.

Invariants:
    - The API process owns one engine (infrastructure.database.init_db)
    - All sessions are async (AsyncSession)

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for tests
"""
