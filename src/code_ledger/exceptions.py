"""
Exception hierarchy for code_ledger.

Every public failure raised by the ledger derives from `CodeLedgerError`.
Callers that only need to tell "the customer asked for too much" apart from
"the ledger is broken" can catch `InsufficientStock` and `StorageError`
respectively; `InvalidRequest` is raised before anything touches the store.
"""

from __future__ import annotations

from typing import Iterable


class CodeLedgerError(Exception):
    """
    Base exception for all code_ledger errors.

    Example
    -------
    >>> try:
    ...     ledger.allocate("p1", 2, order_id="o1")
    ... except CodeLedgerError as exc:
    ...     report(exc.code)
    """

    #: Stable error code for programmatic handling (HTTP payloads, metrics).
    code: str = "code_ledger_error"

    def __init__(self, message: str | None = None) -> None:
        if message is None:
            message = "An unspecified code_ledger error occurred."
        super().__init__(message)


class InvalidRequest(CodeLedgerError):
    """
    Raised for malformed input: a non-positive quantity, an empty code
    string, a blank order id or an unknown product id.
    """

    code: str = "invalid_request"


class InsufficientStock(CodeLedgerError):
    """
    Raised when a product's pool holds fewer AVAILABLE codes than requested.

    No code in the pool changes state when this is raised. The caller may
    reduce the quantity, wait for a restock or abort the checkout line.
    """

    code: str = "insufficient_stock"

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Item {product_id!r} unavailable in requested quantity: "
            f"requested={requested}, available={available}"
        )


class DuplicateCode(CodeLedgerError):
    """
    Raised by a strict insert when some codes already exist in the pool.

    Ordinary inserts only count duplicates; this exception exists for
    operators who prefer to reject a re-uploaded list as a whole.
    """

    code: str = "duplicate_code"

    def __init__(self, product_id: str, codes: Iterable[str]) -> None:
        self.product_id = product_id
        self.codes = tuple(codes)
        super().__init__(
            f"{len(self.codes)} duplicate code(s) for product {product_id!r}"
        )


class StorageError(CodeLedgerError):
    """
    Raised when the underlying persistence is unavailable or inconsistent.

    Fatal for the current operation. Never reported as partial success.
    """

    code: str = "storage_error"


class LockAcquireTimeout(StorageError):
    """
    Raised when a product pool lock cannot be acquired within the timeout.

    This typically means another checkout is allocating from the same pool.

    Common causes
    -------------
    - A concurrent request is allocating or loading codes for the product
    - The configured lock timeout is too low
    - A long-running bulk upload is holding the pool

    Example
    -------
    >>> try:
    ...     ledger.allocate("p1", 1, order_id="o1")
    ... except LockAcquireTimeout:
    ...     retry_later()
    """

    code: str = "lock_acquire_timeout"
