from __future__ import annotations

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from services.ledger_service.app.db.base import Base, TimestampMixin


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    cancelled = "cancelled"


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(index=True, nullable=False)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # Fulfillment status; independent of the paired ledger entry status except for cancellation
    status: Mapped[str] = mapped_column(String(16), default=OrderStatus.pending.value, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), default="balance", nullable=False)
    ledger_entry_id: Mapped[int] = mapped_column(ForeignKey("ledger_entries.id"), unique=True, nullable=False)
