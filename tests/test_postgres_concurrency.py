"""
PostgreSQL concurrency tests for product pools.

These validate real cross-connection behaviour (not mocks):
- The same pool key blocks concurrent lock acquisition (timeout expected).
- Different pools do not block each other.
- N concurrent single-code allocations on N codes all succeed with distinct
  codes; on N-1 codes exactly one fails.

They require a reachable PostgreSQL instance via DATABASE_URL.
"""

import threading
import time
import uuid

import pytest

from code_ledger import CodeLedger, InsufficientStock, LockAcquireTimeout, lock
from code_ledger.hashing import pool_lock_key


@pytest.fixture(autouse=True)
def _require_postgres(django_db) -> None:
    if django_db != "postgresql":
        pytest.skip("DATABASE_URL is not a PostgreSQL database; skipping concurrency tests.")


@pytest.fixture
def backend():
    from code_ledger.backends.postgres import PostgresAdvisoryLockBackend

    return PostgresAdvisoryLockBackend()


def _ensure_thread_connection() -> None:
    """Open a thread-local DB connection early to avoid first-connect races."""
    from django.db import connections

    connections["default"].ensure_connection()


def _close_thread_connection() -> None:
    """Close the thread-local DB connection to avoid leaks between tests."""
    from django.db import connections

    connections["default"].close()


def test_same_pool_blocks_and_times_out(backend):
    """The same pool must block concurrent acquisition; contender should time out."""
    key = pool_lock_key(f"same-{uuid.uuid4().hex[:8]}")

    started = threading.Event()
    release = threading.Event()
    results: dict[str, object] = {}

    def holder() -> None:
        try:
            _ensure_thread_connection()
            with lock(key, timeout=2.0, backend=backend):
                results["holder_acquired"] = True
                started.set()
                release.wait(timeout=2.0)
        finally:
            _close_thread_connection()

    def contender() -> None:
        try:
            _ensure_thread_connection()
            assert started.wait(timeout=2.0)
            t0 = time.monotonic()
            try:
                with lock(key, timeout=0.2, backend=backend):
                    pass
            except LockAcquireTimeout:
                results["contender_timed_out"] = True
            results["contender_elapsed"] = time.monotonic() - t0
        finally:
            _close_thread_connection()

    t1 = threading.Thread(target=holder, name="pool-holder")
    t2 = threading.Thread(target=contender, name="pool-contender")

    t1.start()
    t2.start()
    t2.join(timeout=5.0)
    release.set()
    t1.join(timeout=5.0)

    assert results.get("holder_acquired") is True
    assert results.get("contender_timed_out") is True
    assert results.get("contender_elapsed", 0) >= 0.15


def test_different_pools_do_not_block(backend):
    """Different products should allocate in parallel."""
    key_a = pool_lock_key(f"a-{uuid.uuid4().hex[:8]}")
    key_b = pool_lock_key(f"b-{uuid.uuid4().hex[:8]}")

    started = threading.Event()
    results: list[str] = []

    def a() -> None:
        try:
            _ensure_thread_connection()
            with lock(key_a, timeout=2.0, backend=backend):
                results.append("a_acquired")
                started.set()
                time.sleep(0.3)
        finally:
            _close_thread_connection()

    def b() -> None:
        try:
            _ensure_thread_connection()
            assert started.wait(timeout=2.0)
            with lock(key_b, timeout=0.5, backend=backend):
                results.append("b_acquired")
        finally:
            _close_thread_connection()

    t1 = threading.Thread(target=a, name="pool-a")
    t2 = threading.Thread(target=b, name="pool-b")

    t1.start()
    t2.start()
    t1.join(timeout=5.0)
    t2.join(timeout=5.0)

    assert "a_acquired" in results
    assert "b_acquired" in results


def _allocate_concurrently(pool_size: int, requests: int):
    from code_ledger.contrib.django.store import DjangoCodeStore

    ledger = CodeLedger(DjangoCodeStore(lock_timeout=10.0))
    product_id = f"race-{uuid.uuid4().hex[:8]}"
    ledger.register_product(product_id)
    ledger.insert_codes(product_id, [f"C{i}" for i in range(pool_size)])

    barrier = threading.Barrier(requests)
    codes: list[str] = []
    failures: list[Exception] = []
    guard = threading.Lock()

    def buyer(index: int) -> None:
        try:
            _ensure_thread_connection()
            barrier.wait(timeout=5.0)
            try:
                result = ledger.allocate(product_id, 1, f"o-{index}")
            except InsufficientStock as exc:
                with guard:
                    failures.append(exc)
            else:
                with guard:
                    codes.extend(result.codes)
        finally:
            _close_thread_connection()

    threads = [threading.Thread(target=buyer, args=(i,), name=f"buyer-{i}") for i in range(requests)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30.0)

    return ledger, product_id, codes, failures


def test_concurrent_allocations_exact_pool():
    ledger, product_id, codes, failures = _allocate_concurrently(pool_size=8, requests=8)

    assert failures == []
    assert sorted(codes) == sorted(f"C{i}" for i in range(8))
    assert ledger.store.stock_counter(product_id) == 0


def test_concurrent_allocations_short_pool():
    ledger, product_id, codes, failures = _allocate_concurrently(pool_size=7, requests=8)

    assert len(failures) == 1
    assert len(codes) == len(set(codes)) == 7
    stats = ledger.get_stats(product_id)
    assert (stats.available, stats.sold) == (0, 7)
