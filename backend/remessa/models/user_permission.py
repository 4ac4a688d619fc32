"""UserPermission ORM — one grant row of the four-tier permission cascade.

Invariants:
    - unit_id NULL = all units; module NULL = all modules
    - (user_id, unit_id, module) is unique — checked in the grant routes, because
      SQL unique indexes treat NULLs as distinct

Design Decisions:
    - Five explicit boolean columns instead of a bitmask: readable in SQL and in the API
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from remessa.db.base import Base, utcnow


class UserPermission(Base):
    __tablename__ = "user_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    unit_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=True,
    )
    module: Mapped[str | None] = mapped_column(String(40), nullable=True)
    can_view: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_create: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_transmit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    user: Mapped["User"] = relationship("User", back_populates="permissions")
