import time

from django.db import connections

from ..hashing import key_to_int64


class PostgresAdvisoryLockBackend:
    """
    PostgreSQL advisory lock backend for product pools.

    Serializes pool mutations across every process connected to the same
    database. Each pool key ("code-pool:<product_id>") is hashed into the
    64-bit identifier PostgreSQL expects.

    Key properties
    --------------
    - Connection-scoped: the lock is bound to the current database connection
      of the calling thread. If the process dies, PostgreSQL releases it.
    - Non-transactional: the lock outlives the transaction it wraps, so the
      store takes the lock first and commits before releasing it. Concurrent
      claimers therefore always see the previous claim committed.
    - Global visibility: all workers on the same database compete for the
      same lock id.

    Timeout behavior
    ----------------
    - timeout=None:
        Blocks until the lock is acquired.

    - timeout=float:
        Polls pg_try_advisory_lock until the deadline, so the connection is
        never stuck inside a blocking call.

    Limitations
    -----------
    - Requires PostgreSQL.
    - Lock scope is limited to a single database cluster.
    """

    #: Delay between pg_try_advisory_lock attempts.
    poll_interval: float = 0.05

    def __init__(self, using: str = "default") -> None:
        self.using = using

    def acquire(self, key: str, timeout: float | None) -> bool:
        """
        Attempt to acquire the advisory lock for a pool key.

        Parameters
        ----------
        key : str
            Pool lock key; hashed into a signed 64-bit integer.

        timeout : float | None
            Maximum time to wait for the lock, in seconds.

        Returns
        -------
        bool
            True if the lock was acquired, False if the timeout expired.
        """
        lock_id = key_to_int64(key)
        connection = connections[self.using]

        if timeout is None:
            with connection.cursor() as cursor:
                cursor.execute("SELECT pg_advisory_lock(%s);", [lock_id])
            return True

        deadline = time.monotonic() + timeout

        while True:
            with connection.cursor() as cursor:
                cursor.execute("SELECT pg_try_advisory_lock(%s);", [lock_id])
                acquired = cursor.fetchone()[0]

            if acquired:
                return True
            if time.monotonic() >= deadline:
                return False

            time.sleep(self.poll_interval)

    def release(self, key: str) -> None:
        """
        Release the advisory lock for a pool key.

        PostgreSQL ignores unlock requests for locks the connection does not
        hold, so this is safe to call from a finally block.
        """
        lock_id = key_to_int64(key)

        with connections[self.using].cursor() as cursor:
            cursor.execute("SELECT pg_advisory_unlock(%s);", [lock_id])
