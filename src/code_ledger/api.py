from __future__ import annotations

from typing import Iterable, Mapping

from .allocator import AllocationResult, Allocator
from .bulk import BulkLoader, LoadReport
from .checkout import CheckoutService
from .config import LedgerSettings, build_store
from .export import render_export
from .models import CodeListing, InsertResult, InventoryStats, Order, OrderLine
from .stats import InventoryAggregator
from .store import CodeStore


class CodeLedger:
    """
    Collaborator-facing entry point to the code inventory.

    Wires one store to the allocator, bulk loader, aggregator and checkout
    service. Build it once per process, either around an explicit store or
    with `CodeLedger.from_settings`.

    Example
    -------
    >>> ledger = CodeLedger(MemoryCodeStore())
    >>> ledger.register_product("steam-50")
    >>> ledger.insert_codes("steam-50", ["X1", "X2"])
    InsertResult(inserted=2, duplicates=0, duplicate_codes=())
    >>> ledger.allocate("steam-50", 1, order_id="o1").codes
    ('X1',)
    """

    def __init__(self, store: CodeStore, *, allow_synthetic: bool = False) -> None:
        self.store = store
        self.allocator = Allocator(store, allow_synthetic=allow_synthetic)
        self.loader = BulkLoader(store)
        self.aggregator = InventoryAggregator(store)
        self.checkout = CheckoutService(store, self.allocator)

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "CodeLedger":
        return cls(build_store(settings), allow_synthetic=settings.allow_synthetic)

    def register_product(self, product_id: str) -> None:
        self.store.register_product(product_id)

    def insert_codes(self, product_id: str, codes: Iterable[str], *, strict: bool = False) -> InsertResult:
        return self.store.insert(product_id, codes, strict=strict)

    def load_codes(self, product_id: str, raw: str | Iterable[str], *, strict: bool = False) -> LoadReport:
        return self.loader.load(product_id, raw, strict=strict)

    def allocate(self, product_id: str, quantity: int, order_id: str) -> AllocationResult:
        return self.allocator.allocate(product_id, quantity, order_id)

    def release(self, product_id: str, codes: Iterable[str], order_id: str | None = None) -> int:
        return self.allocator.release(product_id, codes, order_id=order_id)

    def get_stats(self, product_id: str) -> InventoryStats:
        return self.aggregator.stats(product_id)

    def all_stats(self) -> list[InventoryStats]:
        return self.aggregator.all_stats()

    def list_codes(self, product_id: str) -> CodeListing:
        return self.aggregator.listing(product_id)

    def export_codes(self, product_id: str) -> str:
        return render_export(self.list_codes(product_id))

    def reconcile_stock(self, product_id: str) -> int:
        return self.store.reconcile_stock(product_id)

    def place_order(self, order_id: str, lines: Iterable[OrderLine]) -> Order:
        return self.checkout.place_order(order_id, lines)

    def reveal(self, order_id: str) -> Mapping[str, tuple[str, ...]]:
        return self.checkout.reveal(order_id)

    def void_order(self, order_id: str) -> Order:
        return self.checkout.void_order(order_id)
