"""Application Configuration — pydantic-settings model read from the environment and .env.

Invariants:
    - Tokens and credentials never have code defaults other than local development ones
    - get_settings() is cached: one Settings instance per process
    - tce_api_mock decides the transport once, when api/dependencies builds it

Design Decisions:
    - Out of the box the API runs against the deterministic mock TCE; the real
      endpoint is only contacted with TCE_API_MOCK=false
    - TCE_MOCK_OUTCOME lets a demo or a test force the mock into rejection or a network failure
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MockOutcome = Literal["success", "rejected", "transport_error"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # persistence
    database_url: str = "postgresql+asyncpg://remessa:remessa@db:5432/remessa"
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # TCE (e-Sfinge)
    tce_api_mock: bool = True
    tce_mock_outcome: MockOutcome = "success"
    tce_api_base_url: str = "https://api.tce.ms.gov.br/esfinge"
    tce_api_timeout_seconds: float = 30.0

    # HTTP
    cors_origins: list[str] = ["http://localhost:5173"]

    # logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("database_url", mode="before")
    @classmethod
    def use_asyncpg_driver(cls, v):
        """Managed Postgres hands out postgresql:// URLs; the async engine needs +asyncpg."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return "postgresql+asyncpg://" + v.removeprefix("postgresql://")
        return v

    @field_validator("tce_api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
