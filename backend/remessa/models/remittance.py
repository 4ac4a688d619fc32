"""Remittance ORM — one transformed submission package and its lifecycle.

Invariants:
    - status changes only through the guards in core/enforce_transitions.py
    - protocol and sent_at are set only on SENT
    - error_message set on ERROR, cleared on SENT and on retry
    - At most one READY/SENDING remittance per source record (orchestration-level)

Design Decisions:
    - source_record_id kept (nullable) so the one-active-per-record rule can be checked
    - unit/module/competency denormalized from the record: listing and permission
      checks never JOIN
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remessa.db.base import Base, utcnow


class Remittance(Base):
    __tablename__ = "remittances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_record_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("source_records.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    unit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("units.id"), nullable=False, index=True,
    )
    module: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    competency: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="READY", index=True,
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    protocol: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )
