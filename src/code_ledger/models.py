"""Value types shared by the store backends, the allocator and checkout."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class CodeStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"


class OrderStatus(str, Enum):
    COMPLETED = "completed"
    VOIDING = "voiding"
    VOIDED = "voided"


@dataclass(frozen=True)
class CodeRecord:
    """
    One redeemable code in a product's pool.

    ``sold_order_id`` is set exactly when the code is SOLD. ``synthetic``
    marks codes generated on stockout; those are born SOLD.
    """

    product_id: str
    code: str
    status: CodeStatus = CodeStatus.AVAILABLE
    sold_order_id: str | None = None
    synthetic: bool = False

    @property
    def is_available(self) -> bool:
        return self.status is CodeStatus.AVAILABLE


@dataclass(frozen=True)
class InsertResult:
    inserted: int
    duplicates: int
    duplicate_codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClaimResult:
    """Codes handed to one order by a single claim, in pool order."""

    codes: tuple[str, ...]
    synthetic_codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class InventoryStats:
    product_id: str
    available: int
    sold: int

    @property
    def total(self) -> int:
        return self.available + self.sold

    def as_dict(self) -> dict[str, object]:
        return {
            "productId": self.product_id,
            "available": self.available,
            "sold": self.sold,
            "total": self.total,
        }


@dataclass(frozen=True)
class CodeListing:
    product_id: str
    available: tuple[str, ...]
    sold: tuple[str, ...]


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    quantity: int


def _freeze(codes: Mapping[str, tuple[str, ...]] | Mapping[str, list[str]]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({product_id: tuple(values) for product_id, values in codes.items()})


@dataclass(frozen=True)
class Order:
    """
    A fulfilled checkout.

    ``delivery_codes`` holds copies of the code strings allocated per
    product. It is fixed at creation; voiding an order changes ``status``
    only. VOIDING marks a void whose code releases have not all finished.
    """

    order_id: str
    lines: tuple[OrderLine, ...]
    delivery_codes: Mapping[str, tuple[str, ...]]
    status: OrderStatus = OrderStatus.COMPLETED
    revealed: bool = False
    synthetic_codes: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "delivery_codes", _freeze(self.delivery_codes))
        object.__setattr__(self, "synthetic_codes", _freeze(self.synthetic_codes))

    @property
    def has_synthetic_codes(self) -> bool:
        return any(self.synthetic_codes.values())
