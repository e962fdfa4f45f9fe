from __future__ import annotations

import threading


class ThreadLockBackend:
    """
    In-process lock backend: one `threading.Lock` per key.

    Suitable for the in-memory store and for single-process deployments on a
    database without advisory locks (e.g. SQLite). It gives no protection
    across processes.

    Locks are created lazily and kept for the life of the backend; the number
    of keys is bounded by the number of products.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry:
            found = self._locks.get(key)
            if found is None:
                found = self._locks[key] = threading.Lock()
            return found

    def acquire(self, key: str, timeout: float | None) -> bool:
        """
        Acquire the lock for ``key``.

        Returns False when ``timeout`` expires first; ``None`` blocks until
        the lock is free.
        """
        if timeout is None:
            return self._lock_for(key).acquire()
        return self._lock_for(key).acquire(timeout=max(timeout, 0.0))

    def release(self, key: str) -> None:
        self._lock_for(key).release()
