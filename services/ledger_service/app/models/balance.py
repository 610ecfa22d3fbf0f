from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from services.ledger_service.app.db.base import Base, TimestampMixin


class UserBalance(Base, TimestampMixin):
    __tablename__ = "user_balances"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(unique=True, index=True, nullable=False)
    # Stored, authoritative balance; mutated only through BalanceStore.apply_delta
    balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)
