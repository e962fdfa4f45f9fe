"""Shared fixtures: an in-memory ledger, and a Django database when needed."""

import os
from urllib.parse import urlparse

import pytest

from code_ledger import CodeLedger, MemoryCodeStore


def _configure_django_if_needed() -> None:
    """
    Configure Django once per test run.

    Uses PostgreSQL when DATABASE_URL points at one, otherwise an in-memory
    SQLite database (single connection, so no cross-thread tests there).
    """
    from django.conf import settings

    if settings.configured:
        return

    database = {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        u = urlparse(database_url)
        if u.scheme not in {"postgres", "postgresql"}:
            pytest.skip(f"Unsupported DATABASE_URL scheme: {u.scheme!r}")
        database = {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": (u.path or "").lstrip("/"),
            "USER": u.username or "",
            "PASSWORD": u.password or "",
            "HOST": u.hostname or "localhost",
            "PORT": str(u.port or 5432),
            "CONN_MAX_AGE": 0,
        }

    settings.configure(
        SECRET_KEY="test",
        INSTALLED_APPS=["code_ledger.contrib.django"],
        DATABASES={"default": database},
        TIME_ZONE="UTC",
        USE_TZ=True,
    )

    import django
    from django.core.management import call_command

    django.setup()
    call_command("migrate", verbosity=0)


@pytest.fixture(scope="session")
def django_db() -> str:
    """Set up Django and return the database vendor name."""
    _configure_django_if_needed()

    from django.db import connection

    return connection.vendor


@pytest.fixture
def store() -> MemoryCodeStore:
    store = MemoryCodeStore(lock_timeout=2.0)
    store.register_product("p1")
    store.register_product("p2")
    store.register_product("empty")
    return store


@pytest.fixture
def ledger(store: MemoryCodeStore) -> CodeLedger:
    return CodeLedger(store)
