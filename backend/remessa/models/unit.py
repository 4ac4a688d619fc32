"""Unit ORM — a source unit (UG) that submits records to the TCE.

Invariants:
    - code is unique
    - environment selects which TCE token is used for transmission

Design Decisions:
    - Tokens stored on the unit: each UG is credentialed separately by the TCE
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from remessa.db.base import Base, utcnow


class Unit(Base):
    """Unidade gestora — owner of source records and remittances."""
    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    environment: Mapped[str] = mapped_column(
        String(20), nullable=False, default="HOMOLOGACAO",
    )
    production_token: Mapped[str | None] = mapped_column(String(500), nullable=True)
    homologation_token: Mapped[str | None] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )
