from decimal import Decimal

import pytest

from clmharness.config import DEFAULT_POOL_STATE_ACCESSORS, Settings, get_settings
from clmharness.core.recovery import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RPC_URL", "TESTNET_RPC_URL", "PRIVATE_KEY", "TESTNET_PRIVATE_KEY", "GAS_PRICE_GWEI"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.rpc_url == "http://127.0.0.1:8545"
    assert settings.gas_price_wei() is None
    assert settings.pool_state_accessors == DEFAULT_POOL_STATE_ACCESSORS
    assert settings.push_scale_factor == Decimal("1.5")


def test_rpc_url_legacy_alias(monkeypatch):
    """RPC URL should load from the TESTNET_ prefixed name when present."""

    monkeypatch.setenv("TESTNET_RPC_URL", "https://rpc.example.org")

    settings = Settings(_env_file=None)

    assert settings.rpc_url == "https://rpc.example.org"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RPC_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("GAS_PRICE_GWEI", "50")
    monkeypatch.setenv("RANGE_ACCESSORS", '["baseRange()(int24,int24)"]')

    settings = Settings(_env_file=None)

    assert settings.retry_policy().max_attempts == 3
    assert settings.gas_price_wei() == 50 * 10**9
    assert settings.range_accessors == ["baseRange()(int24,int24)"]


def test_explicit_overrides_win(monkeypatch):
    monkeypatch.setenv("PUSH_MAX_ATTEMPTS", "4")

    settings = get_settings(_env_file=None, push_max_attempts=7)

    assert settings.push_max_attempts == 7


def test_retry_policy_from_settings():
    policy = Settings(
        _env_file=None,
        rpc_max_attempts=2,
        rpc_min_delay_seconds=1.0,
        rpc_max_delay_seconds=4.0,
        rpc_jitter_factor=0,
    ).retry_policy()

    assert policy.max_attempts == 2
    assert [policy.get_delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 4.0]


def test_signer_requires_private_key():
    with pytest.raises(ConfigurationError):
        Settings(_env_file=None).resolve_signer()


def test_signer_accepts_unprefixed_key(monkeypatch):
    monkeypatch.setenv("PRIVATE_KEY", "11" * 32)

    account = Settings(_env_file=None).resolve_signer()

    assert account.address.startswith("0x")
    assert len(account.address) == 42
