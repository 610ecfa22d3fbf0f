from __future__ import annotations

from enum import Enum

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from services.ledger_service.app.db.base import Base, TimestampMixin


class AppRole(str, Enum):
    admin = "admin"
    user = "user"


class UserRole(Base, TimestampMixin):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_role"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
