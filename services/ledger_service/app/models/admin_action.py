from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from services.ledger_service.app.db.base import Base, utcnow


class AdminAction(Base):
    """Append-only audit trail of privileged mutations."""

    __tablename__ = "admin_actions"
    __table_args__ = (
        Index("ix_admin_actions_affected", "affected_table", "affected_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    admin_id: Mapped[int] = mapped_column(index=True, nullable=False)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    affected_table: Mapped[str] = mapped_column(String(64), nullable=False)
    affected_id: Mapped[str] = mapped_column(String(64), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
