from .admin import (
    AdminActionPage,
    AdminActionResponse,
    BalanceAdjustment,
    EntryStatusUpdate,
    OrderStatusResponse,
    OrderStatusUpdate,
    RoleChange,
    RoleChangeResponse,
    TransitionResponse,
)
from .ledger import (
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

__all__ = [
    "AdminActionPage",
    "AdminActionResponse",
    "BalanceAdjustment",
    "BalanceEventPage",
    "BalanceEventResponse",
    "BalanceResponse",
    "DepositCreate",
    "EntryStatusUpdate",
    "LedgerEntryPage",
    "LedgerEntryResponse",
    "OrderPage",
    "OrderResponse",
    "OrderStatusResponse",
    "OrderStatusUpdate",
    "PurchaseCreate",
    "PurchaseResponse",
    "RoleChange",
    "RoleChangeResponse",
    "TransitionResponse",
]
