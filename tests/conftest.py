"""Shared pytest fixtures for LockGift tests."""

from __future__ import annotations

import os
import time
from typing import AsyncGenerator

import coincurve
import pytest
import pytest_asyncio

from lockgift.application.gift.use_cases.gift import GiftService
from lockgift.application.gift.use_cases.reconciler import (
    DepositReconciler,
    ReconcilePolicy,
)
from lockgift.bitcoin.addresses import address_to_script_pubkey, p2wpkh_address
from lockgift.bitcoin.keys import KeyDeriver
from lockgift.bitcoin.lockscript import LockScriptBuilder
from lockgift.bitcoin.network import TESTNET, BitcoinNetwork
from lockgift.bitcoin.transactions import SplitTransactionAssembler
from lockgift.domain.gift.entities import normalize_fee_percent
from lockgift.infrastructure.chain.broadcaster import Broadcaster
from lockgift.infrastructure.database import DatabaseClient
from lockgift.infrastructure.storage import RedisKeyValueStore
from tests.fixtures import FakeChainProvider, InMemoryGiftRepository

# BIP32 test vector 1 seed
TEST_SEED_HEX = "000102030405060708090a0b0c0d0e0f"
ONE_YEAR = 365 * 24 * 3600


@pytest.fixture
def network() -> BitcoinNetwork:
    return TESTNET


@pytest.fixture
def seed_hex() -> str:
    return TEST_SEED_HEX


@pytest.fixture
def key_deriver(seed_hex: str, network: BitcoinNetwork) -> KeyDeriver:
    return KeyDeriver(seed_hex, network)


@pytest.fixture
def beneficiary_private_key() -> coincurve.PrivateKey:
    return coincurve.PrivateKey(bytes.fromhex("01" * 32))


@pytest.fixture
def beneficiary_public_key(beneficiary_private_key: coincurve.PrivateKey) -> bytes:
    return beneficiary_private_key.public_key.format(compressed=True)


@pytest.fixture
def beneficiary_address(beneficiary_public_key: bytes, network: BitcoinNetwork) -> str:
    return p2wpkh_address(beneficiary_public_key, network)


@pytest.fixture
def fee_address(network: BitcoinNetwork) -> str:
    fee_key = coincurve.PrivateKey(bytes.fromhex("02" * 32))
    return p2wpkh_address(fee_key.public_key.format(compressed=True), network)


@pytest.fixture
def fee_output_script(fee_address: str, network: BitcoinNetwork) -> bytes:
    return bytes(address_to_script_pubkey(fee_address, network))


@pytest.fixture
def unlock_timestamp() -> int:
    return int(time.time()) + ONE_YEAR


@pytest.fixture
async def gift_repository() -> AsyncGenerator[InMemoryGiftRepository, None]:
    """Create an in-memory gift repository."""
    repo = InMemoryGiftRepository()
    await repo.initialize()
    yield repo
    repo.clear()


@pytest.fixture
def chain_provider() -> FakeChainProvider:
    return FakeChainProvider(fee_rate=2.0)


@pytest.fixture
def gift_service(
    gift_repository: InMemoryGiftRepository,
    key_deriver: KeyDeriver,
    network: BitcoinNetwork,
) -> GiftService:
    return GiftService(
        gift_repository=gift_repository,
        key_deriver=key_deriver,
        network=network,
        fee_percent=normalize_fee_percent("1.00"),
        min_gift_amount_sats=10_000,
        max_horizon_seconds=50 * ONE_YEAR,
    )


@pytest.fixture
def reconciler(
    gift_repository: InMemoryGiftRepository,
    chain_provider: FakeChainProvider,
    key_deriver: KeyDeriver,
    network: BitcoinNetwork,
    fee_output_script: bytes,
) -> DepositReconciler:
    return DepositReconciler(
        gift_repository=gift_repository,
        chain_provider=chain_provider,
        broadcaster=Broadcaster(chain_provider),
        key_deriver=key_deriver,
        lock_builder=LockScriptBuilder(network),
        assembler=SplitTransactionAssembler(network),
        fee_output_script=fee_output_script,
        policy=ReconcilePolicy(min_deposit_sats=6000, min_confirmations=0),
    )


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses database 15 by default, or TEST_REDIS_URL if set.
    """
    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    settings = TestDatabaseSettings(database_url=test_redis_url)
    client = DatabaseClient(settings)
    client.initialize_database()

    try:
        async with client.get_connection() as conn:
            await conn.ping()
    except Exception as e:
        await client.close()
        pytest.skip(f"Redis not available at {test_redis_url}: {e}")

    async with client.get_connection() as conn:
        await conn.flushdb()

    yield client

    async with client.get_connection() as conn:
        await conn.flushdb()
    await client.close()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
