from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class DepositCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)
    currency: str = Field(..., min_length=1, max_length=32, description="Crypto currency or payment method, e.g. USDT")
    external_reference: str | None = Field(None, max_length=128, description="Transaction hash or payment reference")
    proof_url: str | None = Field(None, max_length=512)
    sender_info: str | None = Field(None, max_length=255)

    def details(self) -> dict | None:
        extra = {"proof_url": self.proof_url, "sender_info": self.sender_info}
        return {k: v for k, v in extra.items() if v} or None


class PurchaseCreate(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    product_name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)


class LedgerEntryResponse(BaseModel):
    id: int
    user_id: int
    kind: str
    direction: str
    amount: Decimal
    status: str
    currency_or_method: str | None = None
    external_reference: str | None = None
    details: dict | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryPage(BaseModel):
    entries: list[LedgerEntryResponse]
    next_cursor: int | None = None


class OrderResponse(BaseModel):
    id: int
    user_id: int
    order_number: str
    product_id: str
    product_name: str
    amount: Decimal
    status: str
    payment_method: str
    ledger_entry_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderPage(BaseModel):
    orders: list[OrderResponse]
    next_cursor: int | None = None


class PurchaseResponse(BaseModel):
    order_id: int
    order_number: str
    entry_id: int
    balance: Decimal


class BalanceResponse(BaseModel):
    user_id: int
    balance: Decimal


class BalanceEventResponse(BaseModel):
    id: int
    event_type: str
    payload: dict
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BalanceEventPage(BaseModel):
    events: list[BalanceEventResponse]
    next_cursor: int | None = None
