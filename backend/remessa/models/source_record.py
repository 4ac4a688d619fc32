"""SourceRecord ORM — a raw record ingested from a unit, before transformation.

Invariants:
    - payload is an arbitrary nested JSON document
    - status: RECEIVED -> PROCESSING -> PROCESSED | ERROR
    - Never deleted by the pipeline; only by an explicit delete request

Design Decisions:
    - JSON column for payload: the rule engine addresses fields by dotted path,
      so no per-module schema is imposed at storage time
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from remessa.db.base import Base, utcnow


class SourceRecord(Base):
    __tablename__ = "source_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("units.id"), nullable=False, index=True,
    )
    module: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    competency: Mapped[str] = mapped_column(String(7), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="RECEIVED",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )
