from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from ..dependencies import CurrentUserIdDep, LedgerServiceDep
from ..models import EntryKind, EntryStatus
from ..schemas import (
    BalanceEventPage,
    BalanceEventResponse,
    BalanceResponse,
    DepositCreate,
    LedgerEntryPage,
    LedgerEntryResponse,
    OrderPage,
    OrderResponse,
    PurchaseCreate,
    PurchaseResponse,
)
from ..service import LedgerService

router = APIRouter()


def _next_cursor(rows: list, limit: int) -> int | None:
    return rows[-1].id if len(rows) == limit else None


@router.post("/deposits", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def submit_deposit(
    payload: DepositCreate,
    service: LedgerService = LedgerServiceDep,
    current_user_id: int = CurrentUserIdDep,
) -> LedgerEntryResponse:
    settings = service.settings
    if not settings.deposit_min <= payload.amount <= settings.deposit_max:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Deposit must be between {settings.deposit_min} and {settings.deposit_max}",
        )
    entry = await service.submit_deposit(
        current_user_id,
        payload.amount,
        payload.currency,
        external_reference=payload.external_reference,
        details=payload.details(),
    )
    return LedgerEntryResponse.model_validate(entry)


@router.post("/purchases", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def purchase(
    payload: PurchaseCreate,
    service: LedgerService = LedgerServiceDep,
    current_user_id: int = CurrentUserIdDep,
) -> PurchaseResponse:
    result = await service.purchase(current_user_id, payload.product_id, payload.product_name, payload.price)
    return PurchaseResponse(
        order_id=result.order.id,
        order_number=result.order.order_number,
        entry_id=result.entry.id,
        balance=result.balance,
    )


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(service: LedgerService = LedgerServiceDep, current_user_id: int = CurrentUserIdDep) -> BalanceResponse:
    return BalanceResponse(user_id=current_user_id, balance=await service.get_balance(current_user_id))


@router.get("/entries", response_model=LedgerEntryPage)
async def list_entries(
    service: LedgerService = LedgerServiceDep,
    current_user_id: int = CurrentUserIdDep,
    status_filter: EntryStatus | None = Query(None, alias="status"),
    kind: EntryKind | None = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: int | None = None,
) -> LedgerEntryPage:
    entries = await service.list_entries(
        user_id=current_user_id, status=status_filter, kind=kind, limit=limit, before_id=cursor
    )
    return LedgerEntryPage(
        entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        next_cursor=_next_cursor(entries, limit),
    )


@router.get("/orders", response_model=OrderPage)
async def list_orders(
    service: LedgerService = LedgerServiceDep,
    current_user_id: int = CurrentUserIdDep,
    limit: int = Query(50, ge=1, le=200),
    cursor: int | None = None,
) -> OrderPage:
    orders = await service.list_orders(user_id=current_user_id, limit=limit, before_id=cursor)
    return OrderPage(orders=[OrderResponse.model_validate(o) for o in orders], next_cursor=_next_cursor(orders, limit))


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    service: LedgerService = LedgerServiceDep,
    current_user_id: int = CurrentUserIdDep,
) -> OrderResponse:
    return OrderResponse.model_validate(await service.get_order(order_id, user_id=current_user_id))


@router.get("/events", response_model=BalanceEventPage)
async def balance_events(
    service: LedgerService = LedgerServiceDep,
    current_user_id: int = CurrentUserIdDep,
    after: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> BalanceEventPage:
    """Balance change feed; poll with ``after`` set to the last seen event id."""
    events = await service.balance_events(current_user_id, after_id=after, limit=limit)
    return BalanceEventPage(
        events=[BalanceEventResponse.model_validate(e) for e in events],
        next_cursor=events[-1].id if events else None,
    )
