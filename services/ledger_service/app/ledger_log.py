"""Access to the ledger entry table.

Entries are only ever inserted and have their ``status`` moved by the
transition engine; nothing here edits immutable fields or deletes rows.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import EntryNotFound, InvalidAmount, InvalidStatus
from .models import EntryDirection, EntryKind, EntryStatus, LedgerEntry

CENT = Decimal("0.01")
# Numeric(18, 2) leaves sixteen digits before the decimal point
MAX_INTEGER_DIGITS = 16

_DIRECTION_BY_KIND = {
    EntryKind.deposit: EntryDirection.credit,
    EntryKind.purchase: EntryDirection.debit,
}


def normalize_amount(value: object) -> Decimal:
    """Coerce to a positive Decimal with at most two decimal places."""
    if isinstance(value, bool):
        raise InvalidAmount(f"Amount must be numeric, got {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Amount must be numeric, got {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {value!r}")
    if amount.adjusted() >= MAX_INTEGER_DIGITS:
        raise InvalidAmount(f"Amount exceeds {MAX_INTEGER_DIGITS} integer digits: {value!r}")
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation as exc:
        raise InvalidAmount(f"Amount cannot be represented in cents: {value!r}") from exc
    if amount != quantized:
        raise InvalidAmount(f"Amount has more than two decimal places: {value!r}")
    return quantized


def normalize_signed_amount(value: object) -> Decimal:
    """Like normalize_amount but keeps the sign; zero is rejected."""
    text = str(value).strip()
    if text.startswith("-"):
        return -normalize_amount(text[1:])
    return normalize_amount(text)


def parse_status(value: str | EntryStatus) -> EntryStatus:
    try:
        return EntryStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in EntryStatus)
        raise InvalidStatus(f"Unknown entry status {value!r}; expected one of {allowed}") from exc


async def create_entry(
    session: AsyncSession,
    *,
    user_id: int,
    kind: EntryKind,
    amount: Decimal,
    direction: EntryDirection | None = None,
    currency_or_method: str | None = None,
    external_reference: str | None = None,
    details: dict | None = None,
) -> LedgerEntry:
    """Insert a pending entry. Deposits credit and purchases debit; adjustments need an explicit direction."""
    expected = _DIRECTION_BY_KIND.get(kind)
    if direction is None:
        if expected is None:
            raise ValueError(f"{kind.value} entries need an explicit direction")
        direction = expected
    elif expected is not None and direction != expected:
        raise ValueError(f"{kind.value} entries are always {expected.value}")

    entry = LedgerEntry(
        user_id=user_id,
        kind=kind.value,
        direction=direction.value,
        amount=amount,
        status=EntryStatus.pending.value,
        currency_or_method=currency_or_method,
        external_reference=external_reference,
        details=details or None,
    )
    session.add(entry)
    await session.flush()
    return entry


async def owner_of(session: AsyncSession, entry_id: int) -> int:
    user_id = await session.scalar(select(LedgerEntry.user_id).where(LedgerEntry.id == entry_id))
    if user_id is None:
        raise EntryNotFound(f"Ledger entry {entry_id} not found")
    return user_id


async def get_for_update(session: AsyncSession, entry_id: int) -> LedgerEntry:
    entry = await session.scalar(
        select(LedgerEntry)
        .where(LedgerEntry.id == entry_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if entry is None:
        raise EntryNotFound(f"Ledger entry {entry_id} not found")
    return entry


async def list_entries(
    session: AsyncSession,
    *,
    user_id: int | None = None,
    status: EntryStatus | None = None,
    kind: EntryKind | None = None,
    limit: int = 50,
    before_id: int | None = None,
) -> list[LedgerEntry]:
    """Newest first; ``before_id`` continues from the previous page."""
    stmt = select(LedgerEntry)
    if user_id is not None:
        stmt = stmt.where(LedgerEntry.user_id == user_id)
    if status is not None:
        stmt = stmt.where(LedgerEntry.status == status.value)
    if kind is not None:
        stmt = stmt.where(LedgerEntry.kind == kind.value)
    if before_id is not None:
        stmt = stmt.where(LedgerEntry.id < before_id)
    result = await session.scalars(stmt.order_by(LedgerEntry.id.desc()).limit(limit))
    return list(result)
