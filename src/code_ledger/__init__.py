from .allocator import Allocated, Allocator, SyntheticFallback
from .api import CodeLedger
from .bulk import BulkLoader, LoadReport
from .checkout import CheckoutService
from .config import LedgerSettings, build_store, get_ledger
from .exceptions import (
    CodeLedgerError,
    DuplicateCode,
    InsufficientStock,
    InvalidRequest,
    LockAcquireTimeout,
    StorageError,
)
from .locking import lock
from .models import CodeListing, CodeRecord, CodeStatus, InsertResult, InventoryStats, Order, OrderLine, OrderStatus
from .stats import InventoryAggregator
from .store import CodeStore, MemoryCodeStore

__all__ = [
    "Allocated",
    "Allocator",
    "BulkLoader",
    "CheckoutService",
    "CodeLedger",
    "CodeLedgerError",
    "CodeListing",
    "CodeRecord",
    "CodeStatus",
    "CodeStore",
    "DuplicateCode",
    "InsertResult",
    "InsufficientStock",
    "InvalidRequest",
    "InventoryAggregator",
    "InventoryStats",
    "LedgerSettings",
    "LoadReport",
    "LockAcquireTimeout",
    "MemoryCodeStore",
    "Order",
    "OrderLine",
    "OrderStatus",
    "StorageError",
    "SyntheticFallback",
    "build_store",
    "get_ledger",
    "lock",
]
