"""Status transitions for ledger entries.

The balance effect of an entry is a pure function of its direction, amount and
status. A transition applies exactly the difference between the effect of the
new status and the effect of the old one, so any sequence of status flips
leaves the balance equal to the sum of effects of all entries. There is no
per-transition code path: pending->completed, completed->failed,
failed->completed and the rest all go through ``compute_delta``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from . import balance_store
from .errors import InsufficientBalanceToReverse
from .metrics import ledger_transition_total
from .models import AdminAction, EntryDirection, EntryStatus, LedgerEntry

ZERO = Decimal("0.00")


@dataclass
class AuditContext:
    admin_id: int
    action_type: str = "update_entry_status"
    note: str | None = None


@dataclass
class TransitionResult:
    entry_id: int
    user_id: int
    old_status: EntryStatus
    new_status: EntryStatus
    delta: Decimal
    balance: Decimal

    @property
    def changed(self) -> bool:
        return self.old_status != self.new_status


def effect(direction: EntryDirection | str, amount: Decimal, status: EntryStatus | str) -> Decimal:
    if EntryStatus(status) != EntryStatus.completed:
        return ZERO
    return amount if EntryDirection(direction) == EntryDirection.credit else -amount


def compute_delta(entry: LedgerEntry, new_status: EntryStatus) -> Decimal:
    old_effect = effect(entry.direction, entry.amount, entry.status)
    new_effect = effect(entry.direction, entry.amount, new_status)
    return new_effect - old_effect


async def apply_transition(
    session: AsyncSession,
    entry: LedgerEntry,
    new_status: EntryStatus,
    audit: AuditContext | None = None,
) -> TransitionResult:
    """Move ``entry`` to ``new_status`` and apply its balance delta once.

    Must run inside the caller's transaction with the entry row and the
    owner's lock held. Raises ``InsufficientBalanceToReverse`` without touching
    anything when a negative delta would overdraw the balance.
    """
    old_status = EntryStatus(entry.status)
    if old_status == new_status:
        ledger_transition_total.labels(kind=entry.kind, outcome="noop").inc()
        return TransitionResult(
            entry_id=entry.id,
            user_id=entry.user_id,
            old_status=old_status,
            new_status=new_status,
            delta=ZERO,
            balance=await balance_store.get(session, entry.user_id),
        )

    delta = compute_delta(entry, new_status)
    row = await balance_store.lock(session, entry.user_id)
    if delta < ZERO and row.balance + delta < ZERO:
        ledger_transition_total.labels(kind=entry.kind, outcome="rejected").inc()
        raise InsufficientBalanceToReverse(
            f"Moving entry {entry.id} from {old_status.value} to {new_status.value} needs {-delta}, "
            f"balance is {row.balance}"
        )

    balance = row.balance
    if delta != ZERO:
        balance = await balance_store.apply_delta(
            session,
            entry.user_id,
            delta,
            entry_id=entry.id,
            reason=f"{entry.kind}:{old_status.value}->{new_status.value}",
        )
    entry.status = new_status.value
    if audit is not None:
        note = f"Changed {entry.kind} entry status from {old_status.value} to {new_status.value}"
        if audit.note:
            note = f"{note}: {audit.note}"
        session.add(
            AdminAction(
                admin_id=audit.admin_id,
                action_type=audit.action_type,
                affected_table=LedgerEntry.__tablename__,
                affected_id=str(entry.id),
                note=note,
            )
        )
    await session.flush()

    ledger_transition_total.labels(kind=entry.kind, outcome="applied").inc()
    logger.bind(entry_id=entry.id, user_id=entry.user_id).info(
        "ledger.transition {} {} -> {} delta={} balance={}",
        entry.kind,
        old_status.value,
        new_status.value,
        delta,
        balance,
    )
    return TransitionResult(
        entry_id=entry.id,
        user_id=entry.user_id,
        old_status=old_status,
        new_status=new_status,
        delta=delta,
        balance=balance,
    )
