"""ValidationResult ORM — one fired rule for one source record.

Invariants:
    - Rule fields (code, level, field, message) copied at evaluation time,
      so later rule edits never rewrite history
    - A revalidation deletes and regenerates every row of the record

Design Decisions:
    - rule_id kept without FK cascade: deleting a rule leaves past results readable
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remessa.db.base import Base, utcnow


class ValidationResult(Base):
    __tablename__ = "validation_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("source_records.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    rule_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    field: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
