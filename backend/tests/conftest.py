"""Root conftest — shared test configuration."""

import os

# Never reach a real database or the real TCE from tests
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
os.environ.setdefault("TCE_API_MOCK", "true")
os.environ.setdefault("LOG_FORMAT", "text")
