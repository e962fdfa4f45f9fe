from __future__ import annotations

from functools import wraps
from inspect import signature
from typing import Any, Callable, Mapping, TypeVar

from .locking import lock

F = TypeVar("F", bound=Callable[..., Any])


def _resolve_key(
    key: str | Callable[..., str],
    fn: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> str:
    """
    Resolve a lock key from either:
    - a format string: "code-pool:{product_id}"
    - a callable: lambda self, product_id, *a, **k: f"code-pool:{product_id}"

    (args, kwargs) are bound against the method signature so the template can
    name arguments whether they were passed positionally or by keyword.
    """
    if callable(key):
        return key(*args, **kwargs)

    bound = signature(fn).bind_partial(*args, **kwargs)
    bound.apply_defaults()
    values: Mapping[str, Any] = bound.arguments

    try:
        return key.format(**values)
    except KeyError as e:
        missing = e.args[0]
        raise KeyError(
            f"code_ledger: key template references '{missing}', "
            f"but it is not present in the function arguments. "
            f"Available: {sorted(values.keys())}"
        ) from e


def pool_locked(*, key: str | Callable[..., str] = "code-pool:{product_id}") -> Callable[[F], F]:
    """
    Method decorator: run the method while holding one pool lock.

    The instance supplies the lock backend and timeout through its
    ``lock_backend`` and ``lock_timeout`` attributes, so one store class can
    run on thread locks in tests and advisory locks in production.

    Examples
    --------
    class MemoryCodeStore:
        @pool_locked()
        def claim(self, product_id, quantity, order_id):
            ...

    Raises
    ------
    LockAcquireTimeout
        If the pool lock is not acquired within ``self.lock_timeout``.
    """

    def decorator(fn: F) -> F:
        @wraps(fn)
        def wrapper(self: Any, *args: Any, **kwargs: Any):
            resolved_key = _resolve_key(key, fn, (self, *args), kwargs)

            with lock(resolved_key, timeout=self.lock_timeout, backend=self.lock_backend):
                return fn(self, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
