from __future__ import annotations

from fastapi import APIRouter, Query

from ..dependencies import CurrentUserIdDep, LedgerServiceDep
from ..models import AppRole, EntryKind, EntryStatus
from ..schemas import (
    AdminActionPage,
    AdminActionResponse,
    BalanceAdjustment,
    EntryStatusUpdate,
    LedgerEntryPage,
    LedgerEntryResponse,
    OrderPage,
    OrderResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
    RoleChange,
    RoleChangeResponse,
    TransitionResponse,
)
from ..service import LedgerService

router = APIRouter()


@router.post("/entries/{entry_id}/status", response_model=TransitionResponse)
async def set_entry_status(
    entry_id: int,
    payload: EntryStatusUpdate,
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
) -> TransitionResponse:
    result = await service.admin_set_entry_status(entry_id, payload.status, admin_id, note=payload.note)
    return TransitionResponse.model_validate(result)


@router.get("/entries", response_model=LedgerEntryPage)
async def list_entries(
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
    user_id: int | None = None,
    status_filter: EntryStatus | None = Query(None, alias="status"),
    kind: EntryKind | None = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: int | None = None,
) -> LedgerEntryPage:
    await service.require_admin(admin_id, "list_entries")
    entries = await service.list_entries(user_id=user_id, status=status_filter, kind=kind, limit=limit, before_id=cursor)
    return LedgerEntryPage(
        entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        next_cursor=entries[-1].id if len(entries) == limit else None,
    )


@router.post("/users/{user_id}/adjustments", response_model=TransitionResponse)
async def adjust_balance(
    user_id: int,
    payload: BalanceAdjustment,
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
) -> TransitionResponse:
    result = await service.admin_adjust_balance(user_id, payload.amount, admin_id, note=payload.note)
    return TransitionResponse.model_validate(result)


@router.get("/orders", response_model=OrderPage)
async def list_orders(
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
    user_id: int | None = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: int | None = None,
) -> OrderPage:
    await service.require_admin(admin_id, "list_orders")
    orders = await service.list_orders(user_id=user_id, limit=limit, before_id=cursor)
    return OrderPage(
        orders=[OrderResponse.model_validate(o) for o in orders],
        next_cursor=orders[-1].id if len(orders) == limit else None,
    )


@router.post("/orders/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
) -> OrderStatusResponse:
    order, refund = await service.admin_update_order_status(order_id, payload.status, admin_id)
    return OrderStatusResponse(
        order=OrderResponse.model_validate(order),
        refund=TransitionResponse.model_validate(refund) if refund else None,
    )


@router.post("/users/{user_id}/roles", response_model=RoleChangeResponse)
async def grant_role(
    user_id: int,
    payload: RoleChange,
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
) -> RoleChangeResponse:
    changed = await service.admin_grant_role(user_id, payload.role, admin_id)
    return RoleChangeResponse(user_id=user_id, role=payload.role, changed=changed)


@router.delete("/users/{user_id}/roles/{role}", response_model=RoleChangeResponse)
async def revoke_role(
    user_id: int,
    role: AppRole,
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
) -> RoleChangeResponse:
    changed = await service.admin_revoke_role(user_id, role, admin_id)
    return RoleChangeResponse(user_id=user_id, role=role, changed=changed)


@router.get("/actions", response_model=AdminActionPage)
async def list_admin_actions(
    service: LedgerService = LedgerServiceDep,
    admin_id: int = CurrentUserIdDep,
    affected_table: str | None = None,
    affected_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: int | None = None,
) -> AdminActionPage:
    actions = await service.list_admin_actions(
        admin_id, affected_table=affected_table, affected_id=affected_id, limit=limit, before_id=cursor
    )
    return AdminActionPage(
        actions=[AdminActionResponse.model_validate(a) for a in actions],
        next_cursor=actions[-1].id if len(actions) == limit else None,
    )
