"""
Checkout boundary: turns a confirmed payment into a fulfilled order.

The allocator is atomic per product only. A multi-product checkout is made
atomic here with compensation: each line is a step, and when a later line
fails every completed step is undone (its codes released) before the error
propagates. At most one pool lock is held at any time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Iterable, List, Mapping

from .allocator import AllocationResult, Allocator, validate_quantity
from .exceptions import InvalidRequest
from .locking import lock
from .models import Order, OrderLine, OrderStatus
from .store import CodeStore

logger = logging.getLogger(__name__)


class Step(ABC):
    def __init__(self, order_id: str):
        self.order_id = order_id

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def execute(self) -> None: ...

    @abstractmethod
    def compensate(self) -> None: ...

    def run(self) -> None:
        logger.info("[order=%s] STEP %s", self.order_id, self.name())
        self.execute()
        logger.info("[order=%s] STEP %s OK", self.order_id, self.name())

    def run_compensation(self) -> None:
        logger.info("[order=%s] COMPENSATE %s", self.order_id, self.name())
        self.compensate()
        logger.info("[order=%s] COMPENSATE %s OK", self.order_id, self.name())


class AllocateLine(Step):
    def __init__(self, allocator: Allocator, order_id: str, line: OrderLine):
        super().__init__(order_id)
        self.allocator = allocator
        self.line = line
        self.result: AllocationResult | None = None

    def name(self) -> str:
        return f"AllocateLine[{self.line.product_id}]"

    def execute(self) -> None:
        self.result = self.allocator.allocate(self.line.product_id, self.line.quantity, self.order_id)

    def compensate(self) -> None:
        if self.result is None:
            return
        self.allocator.release(self.line.product_id, self.result.codes, order_id=self.order_id)


def merge_lines(lines: Iterable[OrderLine]) -> list[OrderLine]:
    """Combine lines for the same product, keeping first-seen order."""
    totals: dict[str, int] = {}
    for line in lines:
        validate_quantity(line.quantity)
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    if not totals:
        raise InvalidRequest("An order needs at least one line")
    return [OrderLine(product_id=product_id, quantity=quantity) for product_id, quantity in totals.items()]


class CheckoutService:
    def __init__(self, store: CodeStore, allocator: Allocator):
        self.store = store
        self.allocator = allocator

    def _order_lock(self, order_id: str):
        return lock(f"order:{order_id}", timeout=self.store.lock_timeout, backend=self.store.lock_backend)

    def place_order(self, order_id: str, lines: Iterable[OrderLine]) -> Order:
        """
        Allocate every line and persist the order, or allocate nothing.

        Raises the first line's failure (e.g. `InsufficientStock` naming the
        product) after all earlier lines have been released.
        """
        if not order_id:
            raise InvalidRequest("order_id must be a non-empty string")
        merged = merge_lines(lines)
        for line in merged:
            if not self.store.has_product(line.product_id):
                raise InvalidRequest(f"Unknown product {line.product_id!r}")

        logger.info(
            "[order=%s] CHECKOUT START lines=%s",
            order_id,
            ",".join(f"{line.product_id}x{line.quantity}" for line in merged),
        )

        steps: List[AllocateLine] = [AllocateLine(self.allocator, order_id, line) for line in merged]
        completed: List[AllocateLine] = []
        try:
            for step in steps:
                step.run()
                completed.append(step)

            order = Order(
                order_id=order_id,
                lines=tuple(merged),
                delivery_codes={step.line.product_id: step.result.codes for step in completed},
                synthetic_codes={
                    step.line.product_id: step.result.synthetic_codes
                    for step in completed
                    if step.result.synthetic_codes
                },
            )
            self.store.save_order(order)
        except Exception as e:
            logger.info("[order=%s] CHECKOUT FAILED: %s", order_id, e)
            for step in reversed(completed):
                try:
                    step.run_compensation()
                except Exception as comp_exc:
                    logger.error(
                        "[order=%s] COMPENSATION FAILED at %s: %s; codes left sold: product=%s codes=%s",
                        order_id,
                        step.name(),
                        comp_exc,
                        step.line.product_id,
                        ",".join(step.result.codes),
                    )
            raise

        logger.info("[order=%s] CHECKOUT OK", order_id)
        return order

    def reveal(self, order_id: str) -> Mapping[str, tuple[str, ...]]:
        """Mark the order's codes as shown to the customer and return them."""
        with self._order_lock(order_id):
            order = self.store.get_order(order_id)
            if order.status is not OrderStatus.COMPLETED:
                raise InvalidRequest(f"Order {order_id!r} was voided")
            if not order.revealed:
                order = replace(order, revealed=True)
                self.store.update_order(order)
        return order.delivery_codes

    def _held_codes(self, product_id: str, codes: Iterable[str], order_id: str) -> list[str]:
        wanted = set(codes)
        return [
            record.code
            for record in self.store.list_by_product(product_id)
            if record.code in wanted and record.sold_order_id == order_id
        ]

    def void_order(self, order_id: str) -> Order:
        """
        Void an unrevealed order and put its pool codes back on sale.

        The order is marked VOIDING before any code is released, so it can
        no longer be revealed. If a release fails the order stays VOIDING
        and calling `void_order` again releases whatever it still holds.
        Once codes have been revealed the order can no longer be voided.
        """
        with self._order_lock(order_id):
            order = self.store.get_order(order_id)
            if order.status is OrderStatus.VOIDED:
                raise InvalidRequest(f"Order {order_id!r} is already voided")
            if order.revealed:
                raise InvalidRequest(f"Order {order_id!r} codes were already revealed")

            if order.status is OrderStatus.COMPLETED:
                order = replace(order, status=OrderStatus.VOIDING)
                self.store.update_order(order)
            else:
                logger.info("[order=%s] resuming interrupted void", order_id)

            for product_id, codes in order.delivery_codes.items():
                held = self._held_codes(product_id, codes, order_id)
                if held:
                    self.allocator.release(product_id, held, order_id=order_id)

            order = replace(order, status=OrderStatus.VOIDED)
            self.store.update_order(order)

        logger.info("[order=%s] VOIDED", order_id)
        return order
