from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ..models import AppRole, EntryStatus, OrderStatus
from .ledger import OrderResponse


class EntryStatusUpdate(BaseModel):
    status: EntryStatus
    note: str | None = Field(None, max_length=500)


class TransitionResponse(BaseModel):
    entry_id: int
    user_id: int
    old_status: EntryStatus
    new_status: EntryStatus
    delta: Decimal
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class BalanceAdjustment(BaseModel):
    amount: Decimal = Field(..., max_digits=18, decimal_places=2, description="Signed amount; negative debits the user")
    note: str | None = Field(None, max_length=500)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderStatusResponse(BaseModel):
    order: OrderResponse
    refund: TransitionResponse | None = None


class RoleChange(BaseModel):
    role: AppRole = AppRole.admin


class RoleChangeResponse(BaseModel):
    user_id: int
    role: AppRole
    changed: bool


class AdminActionResponse(BaseModel):
    id: int
    admin_id: int
    action_type: str
    affected_table: str
    affected_id: str
    note: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminActionPage(BaseModel):
    actions: list[AdminActionResponse]
    next_cursor: int | None = None
