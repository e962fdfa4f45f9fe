from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from .exceptions import InvalidRequest
from .store import CodeStore

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r?\n")


@dataclass(frozen=True)
class LoadReport:
    inserted_count: int
    duplicate_count: int


def normalize_codes(raw: str | Iterable[str]) -> list[str]:
    """
    Turn an upload into a list of code strings.

    ``raw`` is either a text blob with one code per line or an iterable of
    strings. Entries are trimmed and blank ones dropped; order is kept.
    """
    entries = _LINE_BREAK.split(raw) if isinstance(raw, str) else raw
    return [entry.strip() for entry in entries if entry and entry.strip()]


class BulkLoader:
    """Appends uploaded codes to a product's pool as AVAILABLE."""

    def __init__(self, store: CodeStore) -> None:
        self.store = store

    def load(self, product_id: str, raw: str | Iterable[str], *, strict: bool = False) -> LoadReport:
        if not self.store.has_product(product_id):
            raise InvalidRequest(f"Unknown product {product_id!r}")

        codes = normalize_codes(raw)
        if not codes:
            raise InvalidRequest(f"Upload for product {product_id!r} contains no codes")

        result = self.store.insert(product_id, codes, strict=strict)
        logger.info(
            "loaded codes for product=%s inserted=%d duplicates=%d",
            product_id,
            result.inserted,
            result.duplicates,
        )
        return LoadReport(inserted_count=result.inserted, duplicate_count=result.duplicates)
