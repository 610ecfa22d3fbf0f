from .admin_action import AdminAction
from .balance import UserBalance
from .ledger_entry import EntryDirection, EntryKind, EntryStatus, LedgerEntry
from .order import Order, OrderStatus
from .outbox_event import OutboxEvent
from .user_role import AppRole, UserRole

__all__ = [
    "AdminAction",
    "AppRole",
    "EntryDirection",
    "EntryKind",
    "EntryStatus",
    "LedgerEntry",
    "Order",
    "OrderStatus",
    "OutboxEvent",
    "UserBalance",
    "UserRole",
]
