"""
Code Store: the source of truth for every code's lifecycle.

`CodeStore` is the interface both backends implement. `MemoryCodeStore`
keeps everything in process memory and serializes pool mutations with
`ThreadLockBackend`; the durable backend lives in
`code_ledger.contrib.django.store`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, Collection, Iterable, Protocol

from .backends.memory import ThreadLockBackend
from .decorators import pool_locked
from .exceptions import DuplicateCode, InsufficientStock, InvalidRequest
from .locking import LockBackend
from .models import ClaimResult, CodeRecord, CodeStatus, InsertResult, Order

logger = logging.getLogger(__name__)

#: Returns a fresh code string that is not in the given collection.
Synthesizer = Callable[[Collection[str]], str]


class CodeStore(Protocol):
    lock_backend: LockBackend
    lock_timeout: float | None

    def register_product(self, product_id: str) -> None: ...
    def product_ids(self) -> list[str]: ...
    def has_product(self, product_id: str) -> bool: ...

    def insert(self, product_id: str, codes: Iterable[str], *, strict: bool = False) -> InsertResult: ...
    def list_by_product(self, product_id: str) -> list[CodeRecord]: ...
    def count_available(self, product_id: str) -> int: ...
    def count_sold(self, product_id: str) -> int: ...
    def stock_counter(self, product_id: str) -> int: ...
    def reconcile_stock(self, product_id: str) -> int: ...

    def claim(
        self,
        product_id: str,
        quantity: int,
        order_id: str,
        *,
        synthesize: Synthesizer | None = None,
    ) -> ClaimResult: ...
    def release(self, product_id: str, codes: Iterable[str], *, order_id: str | None = None) -> int: ...

    def save_order(self, order: Order) -> None: ...
    def update_order(self, order: Order) -> None: ...
    def get_order(self, order_id: str) -> Order: ...


def validate_codes(codes: Iterable[str]) -> list[str]:
    """Materialize ``codes``, rejecting anything that is not a non-empty string."""
    values = list(codes)
    for value in values:
        if not isinstance(value, str) or not value:
            raise InvalidRequest(f"Code values must be non-empty strings, got {value!r}")
    return values


def split_duplicates(codes: list[str], existing: Collection[str]) -> tuple[list[str], list[str]]:
    """
    Partition ``codes`` into (new, duplicates), keeping input order.

    A code is a duplicate when it is already in ``existing`` or appeared
    earlier in the same batch.
    """
    seen: set[str] = set()
    fresh: list[str] = []
    duplicates: list[str] = []
    for code in codes:
        if code in existing or code in seen:
            duplicates.append(code)
        else:
            seen.add(code)
            fresh.append(code)
    return fresh, duplicates


def synthesize_codes(synthesize: Synthesizer, count: int, existing: Collection[str]) -> list[str]:
    """Generate ``count`` codes unique against ``existing`` and each other."""
    generated: list[str] = []
    taken = set(existing)
    for _ in range(count):
        code = synthesize(taken)
        if not code or code in taken:
            raise InvalidRequest(f"Synthesizer returned an unusable code {code!r}")
        taken.add(code)
        generated.append(code)
    return generated


class MemoryCodeStore:
    """
    Process-local code store.

    Intended for tests and offline deployments. Records are immutable
    `CodeRecord` values; a transition replaces the record at its pool
    position, so insertion order is stable for the life of the store.
    """

    def __init__(self, lock_backend: LockBackend | None = None, lock_timeout: float | None = 3.0) -> None:
        self.lock_backend: LockBackend = lock_backend or ThreadLockBackend()
        self.lock_timeout = lock_timeout
        self._pools: dict[str, list[CodeRecord]] = {}
        self._positions: dict[str, dict[str, int]] = {}
        self._stock: dict[str, int] = {}
        self._orders: dict[str, Order] = {}
        self._registry = threading.Lock()

    # Products

    def register_product(self, product_id: str) -> None:
        if not product_id:
            raise InvalidRequest("product_id must be a non-empty string")
        with self._registry:
            self._pools.setdefault(product_id, [])
            self._positions.setdefault(product_id, {})
            self._stock.setdefault(product_id, 0)

    def product_ids(self) -> list[str]:
        with self._registry:
            return list(self._pools)

    def has_product(self, product_id: str) -> bool:
        return product_id in self._pools

    def _pool(self, product_id: str) -> list[CodeRecord]:
        try:
            return self._pools[product_id]
        except KeyError:
            raise InvalidRequest(f"Unknown product {product_id!r}") from None

    # Reads

    def list_by_product(self, product_id: str) -> list[CodeRecord]:
        return list(self._pool(product_id))

    def count_available(self, product_id: str) -> int:
        return sum(1 for record in list(self._pool(product_id)) if record.is_available)

    def count_sold(self, product_id: str) -> int:
        return sum(1 for record in list(self._pool(product_id)) if not record.is_available)

    def stock_counter(self, product_id: str) -> int:
        self._pool(product_id)
        return self._stock[product_id]

    # Writes

    @pool_locked()
    def reconcile_stock(self, product_id: str) -> int:
        available = self.count_available(product_id)
        if self._stock[product_id] != available:
            logger.warning("stock counter drift for product=%s: %d -> %d", product_id, self._stock[product_id], available)
        self._stock[product_id] = available
        return available

    @pool_locked()
    def insert(self, product_id: str, codes: Iterable[str], *, strict: bool = False) -> InsertResult:
        pool = self._pool(product_id)
        positions = self._positions[product_id]
        fresh, duplicates = split_duplicates(validate_codes(codes), positions)

        if strict and duplicates:
            raise DuplicateCode(product_id, duplicates)

        for code in fresh:
            positions[code] = len(pool)
            pool.append(CodeRecord(product_id=product_id, code=code))

        self._stock[product_id] = self.count_available(product_id)
        return InsertResult(inserted=len(fresh), duplicates=len(duplicates), duplicate_codes=tuple(duplicates))

    @pool_locked()
    def claim(
        self,
        product_id: str,
        quantity: int,
        order_id: str,
        *,
        synthesize: Synthesizer | None = None,
    ) -> ClaimResult:
        pool = self._pool(product_id)
        positions = self._positions[product_id]
        available = [index for index, record in enumerate(pool) if record.is_available]

        if len(available) < quantity and synthesize is None:
            raise InsufficientStock(product_id, quantity, len(available))

        chosen = available[:quantity]
        generated = synthesize_codes(synthesize, quantity - len(chosen), positions) if synthesize else []

        for index in chosen:
            pool[index] = replace(pool[index], status=CodeStatus.SOLD, sold_order_id=order_id)
        for code in generated:
            positions[code] = len(pool)
            pool.append(
                CodeRecord(
                    product_id=product_id,
                    code=code,
                    status=CodeStatus.SOLD,
                    sold_order_id=order_id,
                    synthetic=True,
                )
            )

        self._stock[product_id] = self.count_available(product_id)
        claimed = tuple(pool[index].code for index in chosen) + tuple(generated)
        return ClaimResult(codes=claimed, synthetic_codes=tuple(generated))

    @pool_locked()
    def release(self, product_id: str, codes: Iterable[str], *, order_id: str | None = None) -> int:
        pool = self._pool(product_id)
        positions = self._positions[product_id]

        to_release: dict[int, None] = {}
        for code in validate_codes(codes):
            index = positions.get(code)
            if index is None:
                raise InvalidRequest(f"Code {code!r} is not in the pool of product {product_id!r}")
            record = pool[index]
            if record.is_available:
                continue
            if order_id is not None and record.sold_order_id != order_id:
                raise InvalidRequest(
                    f"Code {code!r} of product {product_id!r} was sold to order "
                    f"{record.sold_order_id!r}, not {order_id!r}"
                )
            if record.synthetic:
                logger.warning("synthetic code kept sold on release: product=%s order=%s", product_id, record.sold_order_id)
                continue
            to_release[index] = None

        for index in to_release:
            pool[index] = replace(pool[index], status=CodeStatus.AVAILABLE, sold_order_id=None)

        self._stock[product_id] = self.count_available(product_id)
        return len(to_release)

    # Orders

    def save_order(self, order: Order) -> None:
        with self._registry:
            if order.order_id in self._orders:
                raise InvalidRequest(f"Order {order.order_id!r} already exists")
            self._orders[order.order_id] = order

    def update_order(self, order: Order) -> None:
        with self._registry:
            if order.order_id not in self._orders:
                raise InvalidRequest(f"Unknown order {order.order_id!r}")
            self._orders[order.order_id] = order

    def get_order(self, order_id: str) -> Order:
        try:
            return self._orders[order_id]
        except KeyError:
            raise InvalidRequest(f"Unknown order {order_id!r}") from None
