"""Purchase orchestration: balance check, debit and order creation as one unit.

Purchases debit at creation time. The purchase entry is inserted pending and
immediately moved to completed through the transition engine, so the stored
status always matches the applied effect and the debit takes the same path
as every other balance change.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import balance_store, ledger_log
from .errors import DuplicateOrderNumber, InsufficientFunds
from .models import EntryKind, EntryStatus, LedgerEntry, Order, OrderStatus
from .transition_engine import apply_transition

ORDER_NUMBER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def order_number_generator(prefix: str = "ORD-", length: int = 10) -> Callable[[], str]:
    def generate() -> str:
        return prefix + "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(length))

    return generate


@dataclass
class PurchaseResult:
    order: Order
    entry: LedgerEntry
    balance: Decimal


async def _unused_order_number(session: AsyncSession, order_numbers: Callable[[], str], attempts: int) -> str:
    for _ in range(attempts):
        candidate = order_numbers()
        taken = await session.scalar(select(Order.id).where(Order.order_number == candidate))
        if taken is None:
            return candidate
        logger.warning("ledger.purchase.order_number_collision {}", candidate)
    raise DuplicateOrderNumber(f"Could not allocate a unique order number after {attempts} attempts")


async def purchase(
    session: AsyncSession,
    *,
    user_id: int,
    product_id: str,
    product_name: str,
    price: Decimal,
    order_numbers: Callable[[], str],
    order_number_attempts: int = 3,
    payment_method: str = "balance",
) -> PurchaseResult:
    row = await balance_store.lock(session, user_id)
    if row.balance < price:
        raise InsufficientFunds(f"Balance {row.balance} is below price {price}")

    entry = await ledger_log.create_entry(
        session,
        user_id=user_id,
        kind=EntryKind.purchase,
        amount=price,
        currency_or_method=payment_method,
        external_reference=product_id,
        details={"product_name": product_name},
    )
    transition = await apply_transition(session, entry, EntryStatus.completed)

    order = Order(
        user_id=user_id,
        order_number=await _unused_order_number(session, order_numbers, order_number_attempts),
        product_id=product_id,
        product_name=product_name,
        amount=price,
        status=OrderStatus.pending.value,
        payment_method=payment_method,
        ledger_entry_id=entry.id,
    )
    session.add(order)
    try:
        await session.flush()
    except IntegrityError as exc:
        # Lost a race for the number between the check and the insert
        raise DuplicateOrderNumber(f"Order number {order.order_number} already exists") from exc

    return PurchaseResult(order=order, entry=entry, balance=transition.balance)
