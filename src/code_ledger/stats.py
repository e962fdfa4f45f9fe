from __future__ import annotations

from .models import CodeListing, InventoryStats
from .store import CodeStore


class InventoryAggregator:
    """
    Read-side projection of the code store for reporting.

    Takes no locks and keeps no state, so results may trail a concurrent
    writer. Allocation never consults it.
    """

    def __init__(self, store: CodeStore) -> None:
        self.store = store

    def stats(self, product_id: str) -> InventoryStats:
        return InventoryStats(
            product_id=product_id,
            available=self.store.count_available(product_id),
            sold=self.store.count_sold(product_id),
        )

    def all_stats(self) -> list[InventoryStats]:
        return [self.stats(product_id) for product_id in self.store.product_ids()]

    def listing(self, product_id: str) -> CodeListing:
        records = self.store.list_by_product(product_id)
        return CodeListing(
            product_id=product_id,
            available=tuple(record.code for record in records if record.is_available),
            sold=tuple(record.code for record in records if not record.is_available),
        )
