"""User ORM — principal record consumed by the permission cascade.

Invariants:
    - email is unique
    - Only {id, role, active} is read by the core; credentials live in the identity provider
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from remessa.db.base import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="OPERATOR")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    permissions: Mapped[list["UserPermission"]] = relationship(
        "UserPermission", back_populates="user",
        cascade="all, delete-orphan", lazy="selectin",
    )
