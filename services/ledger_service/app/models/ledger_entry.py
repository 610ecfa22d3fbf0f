from __future__ import annotations

from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from services.ledger_service.app.db.base import Base, TimestampMixin


class EntryKind(str, Enum):
    deposit = "deposit"
    purchase = "purchase"
    adjustment = "adjustment"


class EntryDirection(str, Enum):
    credit = "credit"
    debit = "debit"


class EntryStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class LedgerEntry(Base, TimestampMixin):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_user_created", "user_id", "created_at"),
        Index("ix_ledger_status", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    # Positive magnitude; the sign comes from direction
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=EntryStatus.pending.value, nullable=False)
    currency_or_method: Mapped[str | None] = mapped_column(String(32), nullable=True, default=None)
    external_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, default=None)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=None)
