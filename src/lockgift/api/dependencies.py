"""Dependencies for the LockGift API and the sweeper process."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from ..application.gift.use_cases.gift import GiftService
from ..application.gift.use_cases.reconciler import DepositReconciler, ReconcilePolicy
from ..bitcoin.addresses import address_to_script_pubkey
from ..bitcoin.keys import KeyDeriver
from ..bitcoin.lockscript import LockScriptBuilder
from ..bitcoin.transactions import SplitTransactionAssembler
from ..domain.errors import ConfigurationError
from ..env import Settings, get_settings
from ..infrastructure.chain.broadcaster import Broadcaster
from ..infrastructure.chain.mempool_client import MempoolChainProvider
from ..infrastructure.database import DatabaseClient, get_database_client
from ..infrastructure.gift.gift_repository_impl import GiftRepositoryImpl
from ..infrastructure.storage import RedisKeyValueStore


@lru_cache()
def get_settings_dependency() -> Settings:
    return get_settings()


@lru_cache()
def get_database_client_dependency() -> DatabaseClient:
    settings = get_settings_dependency()
    return get_database_client(settings)


@lru_cache()
def get_store_dependency() -> RedisKeyValueStore:
    db_client = get_database_client_dependency()
    return RedisKeyValueStore(db_client)


@lru_cache()
def get_chain_provider_dependency() -> MempoolChainProvider:
    settings = get_settings_dependency()
    return MempoolChainProvider.from_url(
        settings.chain_api_url, timeout=settings.provider_timeout_seconds
    )


@lru_cache()
def get_key_deriver_dependency() -> Optional[KeyDeriver]:
    settings = get_settings_dependency()
    if not settings.hd_seed:
        return None
    return KeyDeriver(settings.hd_seed, settings.bitcoin_network)


def get_fee_output_script(settings: Settings) -> Optional[bytes]:
    if not settings.fee_address:
        return None
    try:
        return bytes(
            address_to_script_pubkey(settings.fee_address, settings.bitcoin_network)
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid fee address: {e}") from e


def get_gift_repository() -> GiftRepositoryImpl:
    store = get_store_dependency()
    settings = get_settings_dependency()
    return GiftRepositoryImpl(store, index_start=settings.hd_index_start)


def get_gift_service() -> GiftService:
    settings = get_settings_dependency()
    key_deriver = get_key_deriver_dependency()
    if key_deriver is None:
        raise ConfigurationError("HD seed is not configured")
    return GiftService(
        gift_repository=get_gift_repository(),
        key_deriver=key_deriver,
        network=settings.bitcoin_network,
        fee_percent=settings.fee_percent,
        min_gift_amount_sats=settings.min_gift_amount_sats,
        max_horizon_seconds=settings.max_lock_horizon_seconds,
    )


def get_deposit_reconciler() -> DepositReconciler:
    settings = get_settings_dependency()
    network = settings.bitcoin_network
    chain_provider = get_chain_provider_dependency()
    return DepositReconciler(
        gift_repository=get_gift_repository(),
        chain_provider=chain_provider,
        broadcaster=Broadcaster(chain_provider),
        key_deriver=get_key_deriver_dependency(),
        lock_builder=LockScriptBuilder(network, settings.max_lock_horizon_seconds),
        assembler=SplitTransactionAssembler(network),
        fee_output_script=get_fee_output_script(settings),
        policy=ReconcilePolicy(
            min_deposit_sats=settings.min_deposit_sats,
            min_confirmations=settings.min_confirmations,
            sweep_concurrency=settings.sweep_concurrency,
        ),
    )
