from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import admin, balance_store, ledger_log, purchases
from .errors import DuplicateOrderNumber, InsufficientFunds, OrderNotFound
from .locks import UserLocks
from .metrics import (
    ledger_deposit_submitted_total,
    ledger_insufficient_funds_total,
    ledger_notification_failure_total,
    ledger_purchase_total,
)
from .models import AdminAction, AppRole, EntryKind, EntryStatus, LedgerEntry, Order, OrderStatus, OutboxEvent
from .notifications import LogNotifier, Notifier, WebhookNotifier, send_safely
from .purchases import PurchaseResult, order_number_generator
from .settings import LedgerSettings, ledger_settings
from .transition_engine import TransitionResult


class LedgerService:
    """Entry point for every ledger operation.

    Each mutating call is one unit of work: take the owner's lock, open a
    session, run everything inside ``session.begin()`` and commit, then send
    notifications. Read-only calls use a short session of their own.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: LedgerSettings | None = None,
        locks: UserLocks | None = None,
        notifier: Notifier | None = None,
        order_numbers: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings or ledger_settings()
        self.session_factory = session_factory
        self.locks = locks or UserLocks()
        if notifier is None:
            if self.settings.notification_url:
                notifier = WebhookNotifier(self.settings.notification_url, self.settings.notification_timeout_seconds)
            else:
                notifier = LogNotifier()
        self.notifier = notifier
        self.order_numbers = order_numbers or order_number_generator(
            self.settings.order_number_prefix, self.settings.order_number_length
        )

    # -- user operations -------------------------------------------------

    async def submit_deposit(
        self,
        user_id: int,
        amount: object,
        currency: str,
        external_reference: str | None = None,
        details: dict | None = None,
    ) -> LedgerEntry:
        value = ledger_log.normalize_amount(amount)
        async with self.session_factory() as session:
            async with session.begin():
                entry = await ledger_log.create_entry(
                    session,
                    user_id=user_id,
                    kind=EntryKind.deposit,
                    amount=value,
                    currency_or_method=currency,
                    external_reference=external_reference,
                    details=details,
                )
        ledger_deposit_submitted_total.labels(currency=currency).inc()
        logger.bind(user_id=user_id, entry_id=entry.id).info("ledger.deposit.submitted {} {}", value, currency)
        await send_safely(
            self.notifier,
            "deposit.submitted",
            {"user_id": user_id, "entry_id": entry.id, "amount": str(value), "currency": currency},
        )
        return entry

    async def purchase(self, user_id: int, product_id: str, product_name: str, price: object) -> PurchaseResult:
        value = ledger_log.normalize_amount(price)
        attempts = max(self.settings.order_number_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                async with self.locks.hold(user_id):
                    async with self.session_factory() as session:
                        async with session.begin():
                            result = await purchases.purchase(
                                session,
                                user_id=user_id,
                                product_id=product_id,
                                product_name=product_name,
                                price=value,
                                order_numbers=self.order_numbers,
                                order_number_attempts=1,
                            )
                break
            except InsufficientFunds:
                ledger_insufficient_funds_total.labels(operation="purchase").inc()
                ledger_purchase_total.labels(outcome="insufficient_funds").inc()
                raise
            except DuplicateOrderNumber:
                if attempt == attempts:
                    ledger_purchase_total.labels(outcome="duplicate_order_number").inc()
                    raise
                logger.bind(user_id=user_id).warning("ledger.purchase.retry attempt={}", attempt)

        ledger_purchase_total.labels(outcome="success").inc()
        logger.bind(user_id=user_id, order_number=result.order.order_number).info(
            "ledger.purchase.completed {} {} balance={}", product_name, value, result.balance
        )
        await send_safely(
            self.notifier,
            "purchase.completed",
            {
                "user_id": user_id,
                "order_id": result.order.id,
                "order_number": result.order.order_number,
                "product_name": product_name,
                "amount": str(value),
            },
        )
        return result

    async def get_balance(self, user_id: int) -> Decimal:
        async with self.session_factory() as session:
            return await balance_store.get(session, user_id)

    async def list_entries(
        self,
        user_id: int | None = None,
        status: str | EntryStatus | None = None,
        kind: EntryKind | None = None,
        limit: int = 50,
        before_id: int | None = None,
    ) -> list[LedgerEntry]:
        status_filter = ledger_log.parse_status(status) if status is not None else None
        async with self.session_factory() as session:
            return await ledger_log.list_entries(
                session, user_id=user_id, status=status_filter, kind=kind, limit=limit, before_id=before_id
            )

    async def list_orders(self, user_id: int | None = None, limit: int = 50, before_id: int | None = None) -> list[Order]:
        stmt = select(Order)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        if before_id is not None:
            stmt = stmt.where(Order.id < before_id)
        async with self.session_factory() as session:
            return list(await session.scalars(stmt.order_by(Order.id.desc()).limit(limit)))

    async def get_order(self, order_id: int, user_id: int | None = None) -> Order:
        stmt = select(Order).where(Order.id == order_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        async with self.session_factory() as session:
            order = await session.scalar(stmt)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    async def balance_events(self, user_id: int, after_id: int = 0, limit: int = 50) -> list[OutboxEvent]:
        async with self.session_factory() as session:
            return await balance_store.events(session, user_id, after_id=after_id, limit=limit)

    # -- admin operations ------------------------------------------------

    async def require_admin(self, admin_id: int, operation: str) -> None:
        async with self.session_factory() as session:
            await admin.require_admin(session, admin_id, self.settings, operation)

    async def admin_set_entry_status(
        self,
        entry_id: int,
        new_status: str | EntryStatus,
        admin_id: int,
        note: str | None = None,
    ) -> TransitionResult:
        await self.require_admin(admin_id, "set_entry_status")
        status = ledger_log.parse_status(new_status)
        async with self.session_factory() as session:
            owner = await ledger_log.owner_of(session, entry_id)

        async with self.locks.hold(owner):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await admin.set_entry_status(session, entry_id, status, admin_id, note)

        if result.changed:
            await send_safely(
                self.notifier,
                "entry.status_changed",
                {
                    "user_id": result.user_id,
                    "entry_id": result.entry_id,
                    "old_status": result.old_status.value,
                    "new_status": result.new_status.value,
                    "balance": str(result.balance),
                },
            )
        return result

    async def admin_adjust_balance(
        self, user_id: int, amount: object, admin_id: int, note: str | None = None
    ) -> TransitionResult:
        await self.require_admin(admin_id, "adjust_balance")
        signed = ledger_log.normalize_signed_amount(amount)
        async with self.locks.hold(user_id):
            async with self.session_factory() as session:
                async with session.begin():
                    return await admin.adjust_balance(session, user_id, signed, admin_id, note)

    async def admin_update_order_status(
        self, order_id: int, new_status: str | OrderStatus, admin_id: int
    ) -> tuple[Order, TransitionResult | None]:
        await self.require_admin(admin_id, "update_order_status")
        status = admin.parse_order_status(new_status)
        async with self.session_factory() as session:
            owner = await admin.order_owner(session, order_id)

        async with self.locks.hold(owner):
            async with self.session_factory() as session:
                async with session.begin():
                    order, previous, refund = await admin.update_order_status(session, order_id, status, admin_id)

        if previous == status:
            return order, refund
        await send_safely(
            self.notifier,
            "order.status_changed",
            {"user_id": order.user_id, "order_id": order.id, "order_number": order.order_number, "status": order.status},
        )
        return order, refund

    async def admin_grant_role(self, user_id: int, role: AppRole, admin_id: int) -> bool:
        await self.require_admin(admin_id, "grant_role")
        async with self.session_factory() as session:
            async with session.begin():
                return await admin.grant_role(session, user_id, role, admin_id)

    async def admin_revoke_role(self, user_id: int, role: AppRole, admin_id: int) -> bool:
        await self.require_admin(admin_id, "revoke_role")
        async with self.session_factory() as session:
            async with session.begin():
                return await admin.revoke_role(session, user_id, role, admin_id)

    async def list_admin_actions(
        self,
        admin_id: int,
        *,
        affected_table: str | None = None,
        affected_id: str | None = None,
        limit: int = 50,
        before_id: int | None = None,
    ) -> list[AdminAction]:
        await self.require_admin(admin_id, "list_admin_actions")
        async with self.session_factory() as session:
            return await admin.list_admin_actions(
                session, affected_table=affected_table, affected_id=affected_id, limit=limit, before_id=before_id
            )

    async def is_admin(self, user_id: int) -> bool:
        async with self.session_factory() as session:
            return await admin.is_admin(session, user_id, self.settings)

    # -- outbox ----------------------------------------------------------

    async def relay_outbox(self, batch_size: int | None = None) -> int:
        """Push unprocessed balance events to the notifier and return how many were delivered.

        Events are sent outside any transaction and only delivered ones are marked
        processed. The pass stops at the first failure so events keep their order;
        the failed event and everything after it are retried on the next pass.
        Delivery is at-least-once when several workers relay at the same time.
        """
        limit = batch_size or self.settings.outbox_relay_batch_size
        async with self.session_factory() as session:
            pending = list(
                await session.scalars(
                    select(OutboxEvent)
                    .where(OutboxEvent.processed_at.is_(None))
                    .order_by(OutboxEvent.id)
                    .limit(limit)
                )
            )

        delivered: list[int] = []
        for event in pending:
            try:
                await self.notifier.notify(event.event_type, event.payload)
            except Exception as exc:  # noqa: BLE001
                ledger_notification_failure_total.labels(event_type=event.event_type).inc()
                logger.bind(event_id=event.id).warning("ledger.outbox.delivery_failed {}", exc)
                break
            delivered.append(event.id)

        if delivered:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(OutboxEvent)
                        .where(OutboxEvent.id.in_(delivered), OutboxEvent.processed_at.is_(None))
                        .values(processed_at=datetime.now(timezone.utc))
                    )
            logger.debug("ledger.outbox.relayed {}", len(delivered))
        return len(delivered)
