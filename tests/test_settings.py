"""Tests for environment-driven settings."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from lockgift.bitcoin.network import MAINNET, TESTNET
from lockgift.domain.errors import ConfigurationError
from lockgift.env import Settings, get_settings

SEED = "000102030405060708090a0b0c0d0e0f"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (
        "NETWORK",
        "HD_SEED",
        "FEE_ADDRESS",
        "FEE_PERCENT",
        "MEMPOOL_URL",
        "MIN_DEPOSIT_SATS",
        "API_CORS_ORIGINS",
        "API_DEBUG",
        "LOCKING_LEASE",
    ):
        monkeypatch.delenv(f"LOCKGIFT_{name}", raising=False)


def test_defaults():
    settings = get_settings()

    assert settings.bitcoin_network == TESTNET
    assert settings.hd_seed is None
    assert settings.fee_percent == Decimal("1.00")
    assert settings.min_deposit_sats == 6000
    assert settings.chain_api_url == TESTNET.default_mempool_url
    assert settings.max_lock_horizon_seconds == 50 * 365 * 24 * 3600


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LOCKGIFT_NETWORK", "Mainnet")
    monkeypatch.setenv("LOCKGIFT_HD_SEED", f"  {SEED}  ")
    monkeypatch.setenv("LOCKGIFT_FEE_PERCENT", "2.5")
    monkeypatch.setenv("LOCKGIFT_MEMPOOL_URL", "http://localhost:3002/api")
    monkeypatch.setenv("LOCKGIFT_MIN_DEPOSIT_SATS", "10000")
    monkeypatch.setenv("LOCKGIFT_API_CORS_ORIGINS", "https://a.example,https://b.example")
    monkeypatch.setenv("LOCKGIFT_API_DEBUG", "TRUE")
    monkeypatch.setenv("LOCKGIFT_LOCKING_LEASE", "120")

    settings = get_settings()

    assert settings.bitcoin_network == MAINNET
    assert settings.hd_seed == SEED
    assert settings.fee_percent == Decimal("2.50")
    assert settings.chain_api_url == "http://localhost:3002/api"
    assert settings.min_deposit_sats == 10000
    assert settings.api_cors_origins == ["https://a.example", "https://b.example"]
    assert settings.api_debug is True
    assert settings.locking_lease_seconds == 120


def test_blank_values_use_defaults(monkeypatch):
    monkeypatch.setenv("LOCKGIFT_HD_SEED", "   ")

    assert get_settings().hd_seed is None


@pytest.mark.parametrize(
    "field, value",
    [
        ("network", "litecoin"),
        ("hd_seed", "not-hex"),
        ("hd_seed", "00" * 8),
        ("fee_percent", "100"),
        ("fee_percent", "0.005"),
        ("fee_percent", "1.255"),
        ("fee_percent", "abc"),
        ("fee_percent", "NaN"),
        ("hd_index_start", -1),
        ("min_deposit_sats", -5),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_require_helpers():
    settings = Settings()

    with pytest.raises(ConfigurationError):
        settings.require_hd_seed()
    with pytest.raises(ConfigurationError):
        settings.require_fee_address()

    configured = Settings(hd_seed=SEED, fee_address="tb1qfee")
    assert configured.require_hd_seed() == SEED
    assert configured.require_fee_address() == "tb1qfee"


@pytest.mark.parametrize("value", ["0", "0.5", "1.10", "2.50", "99.99"])
def test_fee_percent_with_two_decimals_accepted(value):
    assert Settings(fee_percent=value).fee_percent == Decimal(value)
