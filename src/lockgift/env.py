from __future__ import annotations

import os
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from .bitcoin.keys import parse_seed
from .bitcoin.network import BitcoinNetwork, get_network
from .domain.errors import ConfigurationError, ValidationError
from .domain.gift.entities import normalize_fee_percent


class Settings(BaseModel):
    database_url: str = "redis://localhost:6379/0"

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_workers: int = 1
    api_cors_origins: list[str] = ["*"]

    app_name: str = "LockGift"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    network: str = "testnet"
    hd_seed: Optional[str] = None
    hd_index_start: int = 0
    fee_address: Optional[str] = None
    fee_percent: Decimal = Decimal("1.00")
    mempool_url: Optional[str] = None

    min_deposit_sats: int = 6000
    min_gift_amount_sats: int = 10000
    min_confirmations: int = 0
    max_lock_horizon_years: int = 50

    provider_timeout_seconds: float = 10.0
    sweep_interval_seconds: float = 300.0
    sweep_concurrency: int = 8
    locking_lease_seconds: int = 900

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        try:
            return get_network(v).name
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @field_validator("hd_seed")
    @classmethod
    def validate_hd_seed(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            parse_seed(v)
        except ValidationError as e:
            raise ValueError(str(e)) from e
        return v.strip()

    @field_validator("fee_percent", mode="before")
    @classmethod
    def validate_fee_percent(cls, v: object) -> Decimal:
        return normalize_fee_percent(v)  # type: ignore[arg-type]

    @field_validator("hd_index_start")
    @classmethod
    def validate_hd_index_start(cls, v: int) -> int:
        if v < 0 or v >= 2**31:
            raise ValueError("HD index start must be in [0, 2^31)")
        return v

    @field_validator(
        "min_deposit_sats", "min_gift_amount_sats", "min_confirmations", "sweep_concurrency"
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value cannot be negative")
        return v

    @property
    def bitcoin_network(self) -> BitcoinNetwork:
        return get_network(self.network)

    @property
    def chain_api_url(self) -> str:
        return self.mempool_url or self.bitcoin_network.default_mempool_url

    @property
    def max_lock_horizon_seconds(self) -> int:
        return self.max_lock_horizon_years * 365 * 24 * 3600

    def require_hd_seed(self) -> str:
        if not self.hd_seed:
            raise ConfigurationError("LOCKGIFT_HD_SEED is not configured")
        return self.hd_seed

    def require_fee_address(self) -> str:
        if not self.fee_address:
            raise ConfigurationError("LOCKGIFT_FEE_ADDRESS is not configured")
        return self.fee_address


def _env(name: str) -> Optional[str]:
    value = os.environ.get(f"LOCKGIFT_{name}")
    if value is None or value.strip() == "":
        return None
    return value.strip()


def get_settings() -> Settings:
    values: dict[str, object] = {}

    for field, env_name in (
        ("database_url", "DATABASE_URL"),
        ("api_host", "API_HOST"),
        ("api_port", "API_PORT"),
        ("api_workers", "API_WORKERS"),
        ("app_name", "APP_NAME"),
        ("app_version", "APP_VERSION"),
        ("log_level", "LOG_LEVEL"),
        ("network", "NETWORK"),
        ("hd_seed", "HD_SEED"),
        ("hd_index_start", "HD_INDEX_START"),
        ("fee_address", "FEE_ADDRESS"),
        ("fee_percent", "FEE_PERCENT"),
        ("mempool_url", "MEMPOOL_URL"),
        ("min_deposit_sats", "MIN_DEPOSIT_SATS"),
        ("min_gift_amount_sats", "MIN_GIFT_AMOUNT_SATS"),
        ("min_confirmations", "MIN_CONFIRMATIONS"),
        ("max_lock_horizon_years", "MAX_LOCK_HORIZON_YEARS"),
        ("provider_timeout_seconds", "PROVIDER_TIMEOUT"),
        ("sweep_interval_seconds", "SWEEP_INTERVAL"),
        ("sweep_concurrency", "SWEEP_CONCURRENCY"),
        ("locking_lease_seconds", "LOCKING_LEASE"),
    ):
        value = _env(env_name)
        if value is not None:
            values[field] = value

    api_debug_str = _env("API_DEBUG")
    if api_debug_str is not None:
        values["api_debug"] = api_debug_str.lower() == "true"

    api_cors_origins_str = _env("API_CORS_ORIGINS")
    if api_cors_origins_str is not None:
        values["api_cors_origins"] = api_cors_origins_str.split(",")

    return Settings(**values)
