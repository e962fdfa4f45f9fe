import pytest

from code_ledger import CodeLedger, InvalidRequest, LedgerSettings, MemoryCodeStore, SyntheticFallback, build_store
from code_ledger import config


def test_defaults_from_empty_environment():
    settings = LedgerSettings.from_env({})

    assert settings == LedgerSettings(backend="memory", allow_synthetic=False, lock_timeout=3.0)


def test_values_from_environment():
    settings = LedgerSettings.from_env(
        {
            "CODE_LEDGER_BACKEND": " Django ",
            "CODE_LEDGER_ALLOW_SYNTHETIC": "yes",
            "CODE_LEDGER_LOCK_TIMEOUT": "0.5",
            "CODE_LEDGER_DATABASE": "codes",
        }
    )

    assert settings.backend == "django"
    assert settings.allow_synthetic is True
    assert settings.lock_timeout == 0.5
    assert settings.database == "codes"


@pytest.mark.parametrize("raw", ["", "none", "None"])
def test_blank_timeout_blocks_indefinitely(raw):
    assert LedgerSettings.from_env({"CODE_LEDGER_LOCK_TIMEOUT": raw}).lock_timeout is None


@pytest.mark.parametrize(
    "env",
    [
        {"CODE_LEDGER_BACKEND": "redis"},
        {"CODE_LEDGER_ALLOW_SYNTHETIC": "maybe"},
        {"CODE_LEDGER_LOCK_TIMEOUT": "soon"},
        {"CODE_LEDGER_LOCK_TIMEOUT": "-1"},
    ],
)
def test_invalid_values_rejected(env):
    with pytest.raises(InvalidRequest):
        LedgerSettings.from_env(env)


def test_build_memory_store_uses_timeout():
    store = build_store(LedgerSettings(lock_timeout=1.5))

    assert isinstance(store, MemoryCodeStore)
    assert store.lock_timeout == 1.5


def test_ledger_from_settings_honours_synthetic_flag():
    ledger = CodeLedger.from_settings(LedgerSettings(allow_synthetic=True))
    ledger.register_product("p1")

    assert isinstance(ledger.allocate("p1", 1, "o1"), SyntheticFallback)


def test_get_ledger_is_built_once(monkeypatch):
    monkeypatch.setenv("CODE_LEDGER_BACKEND", "memory")
    config.reset_ledger()
    try:
        assert config.get_ledger() is config.get_ledger()
    finally:
        config.reset_ledger()
