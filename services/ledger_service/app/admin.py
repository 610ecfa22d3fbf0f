"""Privileged operations. Every mutation here leaves an admin action record."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import balance_store, ledger_log
from .errors import InsufficientFunds, InvalidAmount, InvalidOrderTransition, InvalidStatus, OrderNotFound, PermissionDenied
from .metrics import ledger_permission_denied_total
from .models import (
    AdminAction,
    AppRole,
    EntryDirection,
    EntryKind,
    EntryStatus,
    Order,
    OrderStatus,
    UserRole,
)
from .settings import LedgerSettings
from .transition_engine import AuditContext, TransitionResult, apply_transition


async def is_admin(session: AsyncSession, user_id: int, settings: LedgerSettings) -> bool:
    if user_id in settings.bootstrap_admin_ids:
        return True
    role_id = await session.scalar(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == AppRole.admin.value)
    )
    return role_id is not None


async def require_admin(session: AsyncSession, admin_id: int, settings: LedgerSettings, operation: str) -> None:
    if not await is_admin(session, admin_id, settings):
        ledger_permission_denied_total.labels(operation=operation).inc()
        raise PermissionDenied(f"User {admin_id} is not an administrator")


def record(session: AsyncSession, admin_id: int, action_type: str, affected_table: str, affected_id: object, note: str) -> None:
    session.add(
        AdminAction(
            admin_id=admin_id,
            action_type=action_type,
            affected_table=affected_table,
            affected_id=str(affected_id),
            note=note,
        )
    )


async def set_entry_status(
    session: AsyncSession,
    entry_id: int,
    new_status: EntryStatus,
    admin_id: int,
    note: str | None = None,
) -> TransitionResult:
    entry = await ledger_log.get_for_update(session, entry_id)
    if entry.kind == EntryKind.purchase.value and new_status != EntryStatus.failed:
        order = await session.scalar(select(Order).where(Order.ledger_entry_id == entry.id))
        # A cancelled order keeps its purchase refunded
        if order is not None and order.status == OrderStatus.cancelled.value:
            raise InvalidOrderTransition(
                f"Purchase entry {entry.id} belongs to cancelled order {order.order_number} and must stay failed"
            )
    return await apply_transition(session, entry, new_status, AuditContext(admin_id=admin_id, note=note))


async def adjust_balance(
    session: AsyncSession,
    user_id: int,
    amount: Decimal,
    admin_id: int,
    note: str | None = None,
) -> TransitionResult:
    """Signed manual adjustment, recorded as an adjustment entry rather than a bare balance write."""
    if amount == 0:
        raise InvalidAmount("Adjustment amount must be non-zero")
    direction = EntryDirection.credit if amount > 0 else EntryDirection.debit
    magnitude = abs(amount)

    row = await balance_store.lock(session, user_id)
    if direction == EntryDirection.debit and row.balance < magnitude:
        raise InsufficientFunds(f"Balance {row.balance} is below adjustment {magnitude}")

    entry = await ledger_log.create_entry(
        session,
        user_id=user_id,
        kind=EntryKind.adjustment,
        amount=magnitude,
        direction=direction,
        currency_or_method="manual",
        details={"note": note} if note else None,
    )
    return await apply_transition(
        session,
        entry,
        EntryStatus.completed,
        AuditContext(admin_id=admin_id, action_type="adjust_balance", note=note or f"Adjusted balance by {amount}"),
    )


def parse_order_status(value: str | OrderStatus) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidStatus(f"Unknown order status {value!r}; expected one of {allowed}") from exc


async def order_owner(session: AsyncSession, order_id: int) -> int:
    user_id = await session.scalar(select(Order.user_id).where(Order.id == order_id))
    if user_id is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return user_id


async def update_order_status(
    session: AsyncSession,
    order_id: int,
    new_status: OrderStatus,
    admin_id: int,
) -> tuple[Order, OrderStatus, TransitionResult | None]:
    """Change fulfillment status and return the order, its previous status and the refund if any.

    Cancelling refunds by failing the paired purchase entry.
    """
    order = await session.scalar(
        select(Order).where(Order.id == order_id).with_for_update().execution_options(populate_existing=True)
    )
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")

    old_status = OrderStatus(order.status)
    if old_status == new_status:
        return order, old_status, None
    if old_status == OrderStatus.cancelled:
        raise InvalidOrderTransition(f"Order {order.order_number} is cancelled")

    refund = None
    if new_status == OrderStatus.cancelled:
        entry = await ledger_log.get_for_update(session, order.ledger_entry_id)
        refund = await apply_transition(
            session,
            entry,
            EntryStatus.failed,
            AuditContext(admin_id=admin_id, action_type="refund_purchase", note=f"Order {order.order_number} cancelled"),
        )

    order.status = new_status.value
    record(
        session,
        admin_id,
        "update_order_status",
        Order.__tablename__,
        order.id,
        f"Changed order {order.order_number} status from {old_status.value} to {new_status.value}",
    )
    await session.flush()
    return order, old_status, refund


async def grant_role(session: AsyncSession, user_id: int, role: AppRole, admin_id: int) -> bool:
    existing = await session.scalar(select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role.value))
    if existing is not None:
        return False
    session.add(UserRole(user_id=user_id, role=role.value))
    record(session, admin_id, "grant_role", UserRole.__tablename__, user_id, f"Granted {role.value} role to user {user_id}")
    await session.flush()
    return True


async def revoke_role(session: AsyncSession, user_id: int, role: AppRole, admin_id: int) -> bool:
    existing = await session.scalar(select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role.value))
    if existing is None:
        return False
    await session.delete(existing)
    record(session, admin_id, "revoke_role", UserRole.__tablename__, user_id, f"Revoked {role.value} role from user {user_id}")
    await session.flush()
    return True


async def list_admin_actions(
    session: AsyncSession,
    *,
    affected_table: str | None = None,
    affected_id: str | None = None,
    limit: int = 50,
    before_id: int | None = None,
) -> list[AdminAction]:
    stmt = select(AdminAction)
    if affected_table is not None:
        stmt = stmt.where(AdminAction.affected_table == affected_table)
    if affected_id is not None:
        stmt = stmt.where(AdminAction.affected_id == affected_id)
    if before_id is not None:
        stmt = stmt.where(AdminAction.id < before_id)
    result = await session.scalars(stmt.order_by(AdminAction.id.desc()).limit(limit))
    return list(result)
