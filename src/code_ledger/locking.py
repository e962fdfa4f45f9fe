from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Protocol

from .backends.memory import ThreadLockBackend
from .exceptions import LockAcquireTimeout


class LockBackend(Protocol):
    """
    Minimal interface every pool lock backend implements.

    The in-memory store uses `ThreadLockBackend`; the Django store uses
    `PostgresAdvisoryLockBackend` on PostgreSQL so that several server
    processes share one lock per product pool.
    """
    def acquire(self, key: str, timeout: float | None) -> bool: ...
    def release(self, key: str) -> None: ...


# Used when a caller does not pass a backend explicitly.
_default_backend: LockBackend = ThreadLockBackend()


@contextmanager
def lock(
    key: str,
    timeout: float | None = 3.0,
    backend: LockBackend | None = None,
) -> Iterator[None]:
    """
    Hold the pool lock for ``key`` for the duration of the block.

    Without an explicit backend the lock is a process-wide
    `ThreadLockBackend`: the in-memory store has no database to coordinate
    through, and its callers are threads of one process. Stores that are
    shared between processes pass their own backend (the Django store
    passes `PostgresAdvisoryLockBackend` on PostgreSQL).

    ``timeout`` is in seconds; None waits forever. `LockAcquireTimeout`
    is raised when the wait runs out, and is a `StorageError` so callers
    treat a busy pool like an unavailable one.

    >>> with lock(pool_lock_key("steam-50"), timeout=1.0):
    ...     claim_codes()
    """
    be = backend or _default_backend
    if not be.acquire(key, timeout):
        raise LockAcquireTimeout(f"Pool {key!r} is busy (waited {timeout}s)")
    try:
        yield
    finally:
        be.release(key)
