"""
Durable code store on the Django ORM.

Every pool mutation runs as:

1. take the pool lock (PostgreSQL advisory lock, shared by all processes),
2. open ``transaction.atomic()`` and lock the product row,
3. lock the candidate code rows with ``select_for_update()``,
4. flip them with an update conditioned on their current status and
   verify the affected row count,
5. rewrite the product's stock counter,
6. commit, then release the pool lock.

A failed count check or any database error rolls the whole transaction back.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Iterator, TypeVar

from django.db import DatabaseError, connections, transaction
from django.utils import timezone

from ...backends.memory import ThreadLockBackend
from ...backends.postgres import PostgresAdvisoryLockBackend
from ...decorators import pool_locked
from ...exceptions import DuplicateCode, InsufficientStock, InvalidRequest, StorageError
from ...locking import LockBackend
from ...models import ClaimResult, CodeRecord, CodeStatus, InsertResult, Order, OrderLine, OrderStatus
from ...store import Synthesizer, split_duplicates, synthesize_codes, validate_codes
from .models import Code, LedgerOrder, Product

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

#: Keeps IN (...) lists under SQLite's bound-parameter limit.
CHUNK_SIZE = 500


def storage_errors(fn: F) -> F:
    """Re-raise database failures (including lock queries) as StorageError."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            return fn(*args, **kwargs)
        except DatabaseError as exc:
            raise StorageError(f"{fn.__name__} failed: {exc}") from exc

    return wrapper  # type: ignore[return-value]


def default_lock_backend(using: str) -> LockBackend:
    if connections[using].vendor == "postgresql":
        return PostgresAdvisoryLockBackend(using=using)
    return ThreadLockBackend()


def _chunks(values: list[str]) -> Iterator[list[str]]:
    for start in range(0, len(values), CHUNK_SIZE):
        yield values[start:start + CHUNK_SIZE]


def _to_record(row: Code) -> CodeRecord:
    return CodeRecord(
        product_id=row.product_id,
        code=row.code,
        status=CodeStatus(row.status),
        sold_order_id=row.sold_order_id,
        synthetic=row.synthetic,
    )


def _to_order(row: LedgerOrder) -> Order:
    return Order(
        order_id=row.order_id,
        lines=tuple(OrderLine(product_id=line["product_id"], quantity=line["quantity"]) for line in row.lines),
        delivery_codes={product_id: tuple(codes) for product_id, codes in row.delivery_codes.items()},
        synthetic_codes={product_id: tuple(codes) for product_id, codes in row.synthetic_codes.items()},
        status=OrderStatus(row.status),
        revealed=row.revealed,
        created_at=row.created_at,
    )


def _order_fields(order: Order) -> dict[str, Any]:
    return {
        "lines": [{"product_id": line.product_id, "quantity": line.quantity} for line in order.lines],
        "delivery_codes": {product_id: list(codes) for product_id, codes in order.delivery_codes.items()},
        "synthetic_codes": {product_id: list(codes) for product_id, codes in order.synthetic_codes.items()},
        "status": order.status.value,
        "revealed": order.revealed,
        "created_at": order.created_at,
    }


class DjangoCodeStore:
    """Code store backed by the ``code_ledger`` Django app tables."""

    def __init__(
        self,
        using: str = "default",
        lock_timeout: float | None = 3.0,
        lock_backend: LockBackend | None = None,
    ) -> None:
        self.using = using
        self.lock_timeout = lock_timeout
        self.lock_backend: LockBackend = lock_backend or default_lock_backend(using)

    def _codes(self):
        return Code.objects.using(self.using)

    def _locked_product(self, product_id: str) -> Product:
        try:
            return Product.objects.using(self.using).select_for_update().get(pk=product_id)
        except Product.DoesNotExist:
            raise InvalidRequest(f"Unknown product {product_id!r}") from None

    def _require_product(self, product_id: str) -> None:
        if not self.has_product(product_id):
            raise InvalidRequest(f"Unknown product {product_id!r}")

    def _refresh_counter(self, product_id: str) -> int:
        available = self._codes().filter(product_id=product_id, status=Code.Status.AVAILABLE).count()
        Product.objects.using(self.using).filter(pk=product_id).update(stock=available)
        return available

    # Products

    @storage_errors
    def register_product(self, product_id: str) -> None:
        if not product_id:
            raise InvalidRequest("product_id must be a non-empty string")
        Product.objects.using(self.using).get_or_create(product_id=product_id)

    @storage_errors
    def product_ids(self) -> list[str]:
        return list(Product.objects.using(self.using).values_list("product_id", flat=True))

    @storage_errors
    def has_product(self, product_id: str) -> bool:
        return Product.objects.using(self.using).filter(pk=product_id).exists()

    # Reads

    @storage_errors
    def list_by_product(self, product_id: str) -> list[CodeRecord]:
        self._require_product(product_id)
        return [_to_record(row) for row in self._codes().filter(product_id=product_id).order_by("id")]

    @storage_errors
    def count_available(self, product_id: str) -> int:
        self._require_product(product_id)
        return self._codes().filter(product_id=product_id, status=Code.Status.AVAILABLE).count()

    @storage_errors
    def count_sold(self, product_id: str) -> int:
        self._require_product(product_id)
        return self._codes().filter(product_id=product_id, status=Code.Status.SOLD).count()

    @storage_errors
    def stock_counter(self, product_id: str) -> int:
        try:
            return Product.objects.using(self.using).values_list("stock", flat=True).get(pk=product_id)
        except Product.DoesNotExist:
            raise InvalidRequest(f"Unknown product {product_id!r}") from None

    # Writes

    @storage_errors
    @pool_locked()
    def reconcile_stock(self, product_id: str) -> int:
        with transaction.atomic(using=self.using):
            self._locked_product(product_id)
            return self._refresh_counter(product_id)

    @storage_errors
    @pool_locked()
    def insert(self, product_id: str, codes: Iterable[str], *, strict: bool = False) -> InsertResult:
        values = validate_codes(codes)
        with transaction.atomic(using=self.using):
            product = self._locked_product(product_id)

            existing: set[str] = set()
            for chunk in _chunks(sorted(set(values))):
                existing.update(self._codes().filter(product=product, code__in=chunk).values_list("code", flat=True))
            fresh, duplicates = split_duplicates(values, existing)

            if strict and duplicates:
                raise DuplicateCode(product_id, duplicates)

            self._codes().bulk_create([Code(product=product, code=code) for code in fresh], batch_size=CHUNK_SIZE)
            self._refresh_counter(product_id)

        return InsertResult(inserted=len(fresh), duplicates=len(duplicates), duplicate_codes=tuple(duplicates))

    @storage_errors
    @pool_locked()
    def claim(
        self,
        product_id: str,
        quantity: int,
        order_id: str,
        *,
        synthesize: Synthesizer | None = None,
    ) -> ClaimResult:
        with transaction.atomic(using=self.using):
            product = self._locked_product(product_id)
            candidates = list(
                self._codes()
                .select_for_update()
                .filter(product=product, status=Code.Status.AVAILABLE)
                .order_by("id")
                .only("id", "code")[:quantity]
            )

            if len(candidates) < quantity and synthesize is None:
                available = self._codes().filter(product=product, status=Code.Status.AVAILABLE).count()
                raise InsufficientStock(product_id, quantity, available)

            generated: list[str] = []
            if len(candidates) < quantity:
                pool = set(self._codes().filter(product=product).values_list("code", flat=True))
                generated = synthesize_codes(synthesize, quantity - len(candidates), pool)

            now = timezone.now()
            ids = [row.id for row in candidates]
            updated = (
                self._codes()
                .filter(id__in=ids, status=Code.Status.AVAILABLE)
                .update(status=Code.Status.SOLD, sold_order_id=order_id, sold_at=now)
            )
            if updated != len(ids):
                raise StorageError(
                    f"Pool {product_id!r} changed during claim: expected {len(ids)} rows, updated {updated}"
                )

            self._codes().bulk_create(
                [
                    Code(
                        product=product,
                        code=code,
                        status=Code.Status.SOLD,
                        sold_order_id=order_id,
                        synthetic=True,
                        sold_at=now,
                    )
                    for code in generated
                ]
            )
            self._refresh_counter(product_id)

        return ClaimResult(codes=tuple(row.code for row in candidates) + tuple(generated), synthetic_codes=tuple(generated))

    @storage_errors
    @pool_locked()
    def release(self, product_id: str, codes: Iterable[str], *, order_id: str | None = None) -> int:
        values = validate_codes(codes)
        with transaction.atomic(using=self.using):
            product = self._locked_product(product_id)

            rows: dict[str, Code] = {}
            for chunk in _chunks(sorted(set(values))):
                for row in self._codes().select_for_update().filter(product=product, code__in=chunk):
                    rows[row.code] = row

            to_release: dict[int, None] = {}
            for code in values:
                row = rows.get(code)
                if row is None:
                    raise InvalidRequest(f"Code {code!r} is not in the pool of product {product_id!r}")
                if row.status == Code.Status.AVAILABLE:
                    continue
                if order_id is not None and row.sold_order_id != order_id:
                    raise InvalidRequest(
                        f"Code {code!r} of product {product_id!r} was sold to order "
                        f"{row.sold_order_id!r}, not {order_id!r}"
                    )
                if row.synthetic:
                    logger.warning("synthetic code kept sold on release: product=%s order=%s", product_id, row.sold_order_id)
                    continue
                to_release[row.id] = None

            updated = (
                self._codes()
                .filter(id__in=list(to_release), status=Code.Status.SOLD)
                .update(status=Code.Status.AVAILABLE, sold_order_id=None, sold_at=None)
            )
            if updated != len(to_release):
                raise StorageError(
                    f"Pool {product_id!r} changed during release: expected {len(to_release)} rows, updated {updated}"
                )
            self._refresh_counter(product_id)

        return updated

    # Orders

    @storage_errors
    def save_order(self, order: Order) -> None:
        with transaction.atomic(using=self.using):
            _, created = LedgerOrder.objects.using(self.using).get_or_create(
                order_id=order.order_id,
                defaults=_order_fields(order),
            )
        if not created:
            raise InvalidRequest(f"Order {order.order_id!r} already exists")

    @storage_errors
    def update_order(self, order: Order) -> None:
        updated = LedgerOrder.objects.using(self.using).filter(pk=order.order_id).update(**_order_fields(order))
        if not updated:
            raise InvalidRequest(f"Unknown order {order.order_id!r}")

    @storage_errors
    def get_order(self, order_id: str) -> Order:
        try:
            return _to_order(LedgerOrder.objects.using(self.using).get(pk=order_id))
        except LedgerOrder.DoesNotExist:
            raise InvalidRequest(f"Unknown order {order_id!r}") from None
