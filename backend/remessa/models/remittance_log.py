"""RemittanceLog ORM — append-only request/response audit trail of TCE calls.

Invariants:
    - Never updated or deleted by the application
    - Bearer tokens stored truncated (first 10 chars + "...")
    - Read back ordered by (created_at, id)

Design Decisions:
    - Logging table, not enforcement: no state transition depends on it
    - JSON columns for headers/body: request and response shapes vary per module
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from remessa.db.base import Base, utcnow


class RemittanceLog(Base):
    __tablename__ = "remittance_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remittance_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("remittances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    headers: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    body: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
