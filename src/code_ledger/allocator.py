"""
Allocator: the only writer that moves codes from AVAILABLE to SOLD.

Allocation is all-or-nothing per product per call. Selection and
transition happen inside one `CodeStore.claim` call under the product's
pool lock; there is no separate "read available, then write sold" step.

On stockout the allocator either raises `InsufficientStock` or, when the
deployment explicitly opted in with ``allow_synthetic=True``, tops the
batch up with generated codes and returns a `SyntheticFallback` so the
caller can alert on it.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Collection, Iterable, Union

from .exceptions import InvalidRequest
from .store import CodeStore

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 16
CODE_GROUP = 4


def generate_code(taken: Collection[str] = ()) -> str:
    """
    Return a random code shaped like ``ABCD-EFGH-1234-5678``.

    Retries until the value is not in ``taken``.
    """
    while True:
        chars = [secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH)]
        code = "-".join("".join(chars[i:i + CODE_GROUP]) for i in range(0, CODE_LENGTH, CODE_GROUP))
        if code not in taken:
            return code


@dataclass(frozen=True)
class Allocated:
    """Every code came from the product's pool."""

    product_id: str
    order_id: str
    codes: tuple[str, ...]

    synthetic = False

    @property
    def synthetic_codes(self) -> tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class SyntheticFallback:
    """
    The pool ran short and ``synthetic_codes`` were generated to fill the
    batch. ``codes`` still lists every code handed out, pool codes first.
    """

    product_id: str
    order_id: str
    codes: tuple[str, ...]
    synthetic_codes: tuple[str, ...]

    synthetic = True


AllocationResult = Union[Allocated, SyntheticFallback]


def validate_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidRequest(f"quantity must be a positive integer, got {quantity!r}")
    return quantity


class Allocator:
    def __init__(self, store: CodeStore, *, allow_synthetic: bool = False) -> None:
        self.store = store
        self.allow_synthetic = allow_synthetic

    def _check_product(self, product_id: str) -> None:
        if not product_id or not self.store.has_product(product_id):
            raise InvalidRequest(f"Unknown product {product_id!r}")

    def allocate(self, product_id: str, quantity: int, order_id: str) -> AllocationResult:
        """
        Reserve ``quantity`` AVAILABLE codes of ``product_id`` for ``order_id``.

        Codes are returned in pool insertion order and are SOLD, stamped with
        ``order_id``, by the time this returns.

        Raises
        ------
        InvalidRequest
            Bad quantity, blank order id or unknown product.
        InsufficientStock
            Too few codes and synthetic fallback disabled. Nothing changed.
        StorageError
            Persistence failure or lock timeout.
        """
        validate_quantity(quantity)
        if not order_id:
            raise InvalidRequest("order_id must be a non-empty string")
        self._check_product(product_id)

        synthesize = generate_code if self.allow_synthetic else None
        claim = self.store.claim(product_id, quantity, order_id, synthesize=synthesize)

        if claim.synthetic_codes:
            logger.warning(
                "[order=%s] pool exhausted for product=%s: generated %d synthetic code(s)",
                order_id,
                product_id,
                len(claim.synthetic_codes),
            )
            return SyntheticFallback(
                product_id=product_id,
                order_id=order_id,
                codes=claim.codes,
                synthetic_codes=claim.synthetic_codes,
            )

        logger.info("[order=%s] allocated product=%s qty=%d", order_id, product_id, quantity)
        return Allocated(product_id=product_id, order_id=order_id, codes=claim.codes)

    def release(self, product_id: str, codes: Iterable[str], order_id: str | None = None) -> int:
        """
        Compensating rollback: return SOLD codes to AVAILABLE.

        Only for undoing an allocation whose order is being voided before the
        codes were revealed. Never use it for refunds after fulfillment.
        """
        self._check_product(product_id)
        released = self.store.release(product_id, codes, order_id=order_id)
        logger.info("[order=%s] released product=%s count=%d", order_id, product_id, released)
        return released
