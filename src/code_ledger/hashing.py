import hashlib

POOL_KEY_PREFIX = "code-pool"


def pool_lock_key(product_id: str) -> str:
    """Return the lock key guarding one product's code pool."""
    return f"{POOL_KEY_PREFIX}:{product_id}"


def key_to_int64(key: str) -> int:
    """
    Convert a pool lock key into a stable signed 64-bit integer.

    PostgreSQL advisory locks are identified by a BIGINT, while pool keys are
    strings such as "code-pool:steam-50". Every worker must derive the same
    lock id for the same product, so the mapping has to be deterministic
    across processes, machines and Python versions (the built-in ``hash`` is
    salted per process and cannot be used).

    Implementation details
    ----------------------
    BLAKE2b with an 8-byte digest gives exactly 64 bits. The unsigned value
    is folded into PostgreSQL's signed range (-2^63 to 2^63-1).

    Parameters
    ----------
    key : str
        Pool lock key, usually built with `pool_lock_key`.

    Returns
    -------
    int
        Signed 64-bit integer suitable for pg_advisory_lock.
    """
    digest = hashlib.blake2b(
        key.encode("utf-8"),
        digest_size=8,
    ).digest()

    value = int.from_bytes(digest, byteorder="big", signed=False)

    if value >= 2**63:
        value -= 2**64

    return value
