"""
Process-level configuration.

The storage backend is chosen once, when the process starts, from
environment variables:

- ``CODE_LEDGER_BACKEND``: ``memory`` (default) or ``django``.
- ``CODE_LEDGER_ALLOW_SYNTHETIC``: generate codes on stockout instead of
  failing the sale. Off by default; meant for offline demos only.
- ``CODE_LEDGER_LOCK_TIMEOUT``: seconds to wait for a pool lock (default
  3.0). Empty or ``none`` blocks indefinitely.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Mapping

from .exceptions import InvalidRequest
from .store import CodeStore, MemoryCodeStore

if TYPE_CHECKING:
    from .api import CodeLedger

Backend = Literal["memory", "django"]

BACKENDS: tuple[str, ...] = ("memory", "django")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"", "0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise InvalidRequest(f"{name} must be a boolean, got {raw!r}")


def _parse_timeout(name: str, raw: str) -> float | None:
    value = raw.strip().lower()
    if value in {"", "none"}:
        return None
    try:
        timeout = float(value)
    except ValueError:
        raise InvalidRequest(f"{name} must be a number of seconds, got {raw!r}") from None
    if timeout < 0:
        raise InvalidRequest(f"{name} must not be negative, got {raw!r}")
    return timeout


@dataclass(frozen=True)
class LedgerSettings:
    backend: Backend = "memory"
    allow_synthetic: bool = False
    lock_timeout: float | None = 3.0
    database: str = "default"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LedgerSettings":
        env = os.environ if environ is None else environ

        backend = env.get("CODE_LEDGER_BACKEND", "memory").strip().lower()
        if backend not in BACKENDS:
            raise InvalidRequest(f"CODE_LEDGER_BACKEND must be one of {BACKENDS}, got {backend!r}")

        return cls(
            backend=backend,  # type: ignore[arg-type]
            allow_synthetic=_parse_bool("CODE_LEDGER_ALLOW_SYNTHETIC", env.get("CODE_LEDGER_ALLOW_SYNTHETIC", "")),
            lock_timeout=_parse_timeout("CODE_LEDGER_LOCK_TIMEOUT", env.get("CODE_LEDGER_LOCK_TIMEOUT", "3.0")),
            database=env.get("CODE_LEDGER_DATABASE", "default"),
        )


def build_store(settings: LedgerSettings) -> CodeStore:
    """Instantiate the configured backend."""
    if settings.backend == "django":
        # Importing the ORM models needs configured Django settings.
        from .contrib.django.store import DjangoCodeStore

        return DjangoCodeStore(using=settings.database, lock_timeout=settings.lock_timeout)
    return MemoryCodeStore(lock_timeout=settings.lock_timeout)


_ledger: "CodeLedger | None" = None


def get_ledger() -> "CodeLedger":
    """Return the process-wide ledger, building it from the environment once."""
    global _ledger
    if _ledger is None:
        from .api import CodeLedger

        _ledger = CodeLedger.from_settings(LedgerSettings.from_env())
    return _ledger


def reset_ledger() -> None:
    global _ledger
    _ledger = None
