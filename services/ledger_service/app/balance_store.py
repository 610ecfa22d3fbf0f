"""Per-user spendable balance.

``apply_delta`` is the only mutator. Callers hold the user's lock (see
``locks.UserLocks``) and run inside a transaction; the balance row itself is
read ``FOR UPDATE`` so other workers serialize on it too.
"""

from __future__ import annotations

from decimal import Decimal

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InsufficientFunds
from .metrics import ledger_balance_delta_total
from .models import OutboxEvent, UserBalance

ZERO = Decimal("0.00")
BALANCE_CHANGED = "balance.changed"


async def get(session: AsyncSession, user_id: int) -> Decimal:
    balance = await session.scalar(select(UserBalance.balance).where(UserBalance.user_id == user_id))
    return balance if balance is not None else ZERO


async def lock(session: AsyncSession, user_id: int) -> UserBalance:
    """Return the user's balance row locked for update, creating it at zero when missing."""
    row = await session.scalar(
        select(UserBalance).where(UserBalance.user_id == user_id).with_for_update().execution_options(populate_existing=True)
    )
    if row is None:
        row = UserBalance(user_id=user_id, balance=ZERO)
        session.add(row)
        await session.flush()
    return row


async def apply_delta(
    session: AsyncSession,
    user_id: int,
    delta: Decimal,
    *,
    entry_id: int | None = None,
    reason: str | None = None,
) -> Decimal:
    row = await lock(session, user_id)
    new_balance = row.balance + delta
    if new_balance < ZERO:
        raise InsufficientFunds(f"Balance {row.balance} cannot absorb {delta}")

    row.balance = new_balance
    session.add(
        OutboxEvent(
            user_id=user_id,
            event_type=BALANCE_CHANGED,
            payload={
                "user_id": user_id,
                "delta": str(delta),
                "balance": str(new_balance),
                "entry_id": entry_id,
                "reason": reason,
            },
        )
    )
    await session.flush()
    ledger_balance_delta_total.labels(direction="credit" if delta > 0 else "debit").inc()
    logger.bind(user_id=user_id, entry_id=entry_id).debug("ledger.balance.delta {} -> {}", delta, new_balance)
    return new_balance


async def events(session: AsyncSession, user_id: int, after_id: int = 0, limit: int = 50) -> list[OutboxEvent]:
    result = await session.scalars(
        select(OutboxEvent)
        .where(OutboxEvent.user_id == user_id, OutboxEvent.id > after_id)
        .order_by(OutboxEvent.id)
        .limit(limit)
    )
    return list(result)
