"""Deposit reconciliation: drives each gift from deposit to lock exactly once.

Every trigger (the periodic sweep, a deposit webhook, an operator retry) goes
through the same path. The only serialization point is the ledger's
compare-and-set on ``awaiting_deposit -> locking``: whichever invocation wins
it is the only one that builds, signs and broadcasts for that gift. Losers
return without side effects.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from prometheus_client import Counter, Histogram

from ....bitcoin.keys import KeyDeriver
from ....bitcoin.lockscript import LockScriptBuilder
from ....bitcoin.transactions import SplitTransaction, SplitTransactionAssembler
from ....domain.errors import (
    BroadcastError,
    ConfigurationError,
    ConstructionError,
    GiftNotFoundError,
    InvalidTransition,
    ProviderUnavailable,
    ValidationError,
)
from ....domain.gift.entities import DepositRef, Gift, GiftStatus
from ....domain.gift.repositories import GiftRepository
from ....domain.shared.chain_provider_protocol import ChainProviderProtocol, Utxo
from ....infrastructure.chain.broadcaster import Broadcaster
from ..dtos import ReconcileResultDTO, SweepResultDTO
from .gift_validators import select_deposit_utxo

logger = logging.getLogger(__name__)

reconcile_total = Counter(
    "lockgift_reconcile_total",
    "Gift reconciliation attempts by outcome",
    ["outcome"],
)

reconcile_duration_seconds = Histogram(
    "lockgift_reconcile_duration_seconds",
    "Wall time to reconcile a single gift",
    ["outcome"],
)


class ReconcileOutcome(str, Enum):
    LOCKED = "locked"
    NO_DEPOSIT = "no_deposit"
    ALREADY_CLAIMED = "already_claimed"
    CONFLICT = "conflict"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class ReconcilePolicy:
    min_deposit_sats: int = 6000
    min_confirmations: int = 0
    sweep_concurrency: int = 8
    sweep_limit: int = 1000


class DepositReconciler:
    """Moves funded gifts from ``awaiting_deposit`` to ``locked`` or ``failed``."""

    def __init__(
        self,
        gift_repository: GiftRepository,
        chain_provider: ChainProviderProtocol,
        broadcaster: Broadcaster,
        key_deriver: Optional[KeyDeriver],
        lock_builder: LockScriptBuilder,
        assembler: SplitTransactionAssembler,
        fee_output_script: Optional[bytes],
        policy: Optional[ReconcilePolicy] = None,
    ):
        self.gift_repository = gift_repository
        self.chain_provider = chain_provider
        self.broadcaster = broadcaster
        self.key_deriver = key_deriver
        self.lock_builder = lock_builder
        self.assembler = assembler
        self.fee_output_script = fee_output_script
        self.policy = policy or ReconcilePolicy()

    def _require_configuration(self) -> tuple[KeyDeriver, bytes]:
        if self.key_deriver is None:
            raise ConfigurationError("HD seed is not configured")
        if not self.fee_output_script:
            raise ConfigurationError("Fee address is not configured")
        return self.key_deriver, self.fee_output_script

    async def reconcile_gift(self, gift_id: UUID) -> ReconcileOutcome:
        """Advance one gift as far as the chain allows.

        Raises:
            ConfigurationError: signing seed or fee destination is missing.
            GiftNotFoundError: no gift with ``gift_id``.
        """
        start_time = time.perf_counter()
        outcome = await self._reconcile_gift(gift_id)
        reconcile_total.labels(outcome=outcome.value).inc()
        reconcile_duration_seconds.labels(outcome=outcome.value).observe(
            time.perf_counter() - start_time
        )
        return outcome

    async def _reconcile_gift(self, gift_id: UUID) -> ReconcileOutcome:
        key_deriver, fee_output_script = self._require_configuration()

        gift = await self.gift_repository.get_by_id(gift_id)
        if gift is None:
            raise GiftNotFoundError(f"Gift {gift_id} not found")
        if gift.status != GiftStatus.AWAITING_DEPOSIT:
            return ReconcileOutcome.ALREADY_CLAIMED

        try:
            utxos = await self.chain_provider.get_utxos(gift.deposit_address)
        except ProviderUnavailable as e:
            logger.warning("UTXO lookup for gift %s failed: %s", gift.id, e)
            return ReconcileOutcome.PROVIDER_UNAVAILABLE

        deposit = select_deposit_utxo(
            utxos, self.policy.min_deposit_sats, self.policy.min_confirmations
        )
        if deposit is None:
            return ReconcileOutcome.NO_DEPOSIT

        try:
            fee_rate = await self.chain_provider.get_recommended_fee_rate()
        except ProviderUnavailable as e:
            logger.warning("Fee rate lookup for gift %s failed: %s", gift.id, e)
            return ReconcileOutcome.PROVIDER_UNAVAILABLE

        claimed = await self.gift_repository.transition(
            gift.id,
            GiftStatus.AWAITING_DEPOSIT,
            GiftStatus.LOCKING,
            deposit_ref=DepositRef(
                txid=deposit.txid, vout=deposit.vout, amount_sats=deposit.amount_sats
            ),
            deposit_confirmations=deposit.confirmations,
            locking_started_at=datetime.now(timezone.utc),
        )
        if claimed is None:
            logger.info("Gift %s already claimed by a concurrent reconcile", gift.id)
            return ReconcileOutcome.CONFLICT
        logger.info(
            "Gift %s claimed deposit %s:%d (%d sats)",
            gift.id,
            deposit.txid,
            deposit.vout,
            deposit.amount_sats,
        )

        try:
            split, lock_address, redeem_script = self._build_lock_transaction(
                claimed, deposit, key_deriver, fee_output_script, fee_rate
            )
        except (ConstructionError, ValidationError) as e:
            logger.warning("Could not build lock transaction for gift %s: %s", gift.id, e)
            await self._mark_failed(claimed.id, "construction", str(e))
            return ReconcileOutcome.FAILED

        pending = await self.gift_repository.transition(
            claimed.id,
            GiftStatus.LOCKING,
            GiftStatus.LOCKING,
            pending_lock_txid=split.txid,
            lock_vout=split.lock_vout,
            lock_address=lock_address,
            redeem_script_hex=redeem_script.hex(),
            fee_sats=split.fee_sats,
            locked_sats=split.locked_sats,
            network_fee_sats=split.network_fee_sats,
        )
        if pending is None:
            logger.warning("Gift %s left locking before broadcast", gift.id)
            return ReconcileOutcome.CONFLICT

        try:
            txid = await self.broadcaster.submit(split.raw_tx)
        except BroadcastError as e:
            await self._mark_failed(claimed.id, "broadcast", str(e))
            return ReconcileOutcome.FAILED
        if txid != split.txid:
            logger.warning(
                "Provider reported txid %s for gift %s, expected %s",
                txid,
                gift.id,
                split.txid,
            )

        locked = await self.gift_repository.transition(
            claimed.id,
            GiftStatus.LOCKING,
            GiftStatus.LOCKED,
            lock_txid=split.txid,
            locked_at=datetime.now(timezone.utc),
        )
        if locked is None:
            # Stale-lock recovery moved the gift; retry_failed will find the txid
            logger.error(
                "Gift %s broadcast %s but left locking concurrently", gift.id, split.txid
            )
            return ReconcileOutcome.CONFLICT

        logger.info(
            "Gift %s locked in %s: %d sats locked, %d sats fee, %d sats network fee",
            gift.id,
            split.txid,
            split.locked_sats,
            split.fee_sats,
            split.network_fee_sats,
        )
        return ReconcileOutcome.LOCKED

    def _build_lock_transaction(
        self,
        gift: Gift,
        deposit: Utxo,
        key_deriver: KeyDeriver,
        fee_output_script: bytes,
        fee_rate: float,
    ) -> tuple[SplitTransaction, str, bytes]:
        signing_key = key_deriver.derive(gift.deposit_index)
        if signing_key.address != gift.deposit_address:
            raise ConstructionError(
                "Derived key does not match the gift's deposit address"
            )
        lock = self.lock_builder.build(gift.beneficiary, gift.unlock_timestamp)
        split = self.assembler.assemble(
            funding_utxo=deposit,
            signing_key=signing_key,
            fee_output_script=fee_output_script,
            lock_script_pubkey=lock.script_pubkey,
            fee_percent=gift.fee_percent,
            fee_rate=fee_rate,
        )
        return split, lock.address, lock.redeem_script

    async def _mark_failed(self, gift_id: UUID, kind: str, reason: str) -> None:
        failed = await self.gift_repository.transition(
            gift_id,
            GiftStatus.LOCKING,
            GiftStatus.FAILED,
            failure_kind=kind,
            failure_reason=reason,
        )
        if failed is None:
            logger.warning("Gift %s left locking before it could be failed", gift_id)
        else:
            logger.info("Gift %s failed (%s): %s", gift_id, kind, reason)

    async def reconcile_address(self, address: str) -> ReconcileResultDTO:
        """Reconcile the gift owning ``address`` (deposit push notification)."""
        gift = await self.gift_repository.get_by_deposit_address(address.strip())
        if gift is None:
            raise GiftNotFoundError(f"No gift found for deposit address {address}")
        outcome = await self.reconcile_gift(gift.id)
        return ReconcileResultDTO(gift_id=gift.id, outcome=outcome.value)

    async def reconcile_pending(self, limit: Optional[int] = None) -> SweepResultDTO:
        """Reconcile every gift awaiting a deposit.

        Gifts run concurrently up to the policy's sweep concurrency; an
        unexpected error for one gift is logged and does not affect others.
        """
        self._require_configuration()
        gifts = await self.gift_repository.list_by_status(
            GiftStatus.AWAITING_DEPOSIT, 0, limit or self.policy.sweep_limit
        )
        semaphore = asyncio.Semaphore(max(self.policy.sweep_concurrency, 1))

        async def run(gift_id: UUID) -> ReconcileOutcome:
            async with semaphore:
                try:
                    return await self.reconcile_gift(gift_id)
                except ConfigurationError:
                    raise
                except Exception:
                    logger.exception("Reconcile of gift %s failed", gift_id)
                    return ReconcileOutcome.ERROR

        outcomes = await asyncio.gather(*(run(g.id) for g in gifts))
        counts: dict[str, int] = {}
        for outcome in outcomes:
            counts[outcome.value] = counts.get(outcome.value, 0) + 1
        if gifts:
            logger.info("Reconciled %d awaiting gifts: %s", len(gifts), counts)
        return SweepResultDTO(processed=len(gifts), outcomes=counts)

    async def retry_failed(self, gift_id: UUID) -> Gift:
        """Operator retry for a failed gift. Never resubmits a stale transaction.

        - signed transaction known to the network: the gift is ``locked``
        - deposit still unspent: back to ``awaiting_deposit`` for re-binding
        - deposit spent elsewhere: stays ``failed`` with the reason updated
        """
        gift = await self.gift_repository.get_by_id(gift_id)
        if gift is None:
            raise GiftNotFoundError(f"Gift {gift_id} not found")
        if gift.status != GiftStatus.FAILED:
            raise InvalidTransition(
                f"Only failed gifts can be retried; gift is {gift.status.value}"
            )

        if gift.pending_lock_txid:
            tx_status = await self.chain_provider.get_tx_status(gift.pending_lock_txid)
            if tx_status.found:
                return await self._transition_or_conflict(
                    gift,
                    GiftStatus.LOCKED,
                    lock_txid=gift.pending_lock_txid,
                    locked_at=datetime.now(timezone.utc),
                    failure_kind=None,
                    failure_reason=None,
                )

        ref = gift.deposit_ref
        if ref is not None and await self.chain_provider.is_output_spent(
            ref.txid, ref.vout
        ):
            return await self._transition_or_conflict(
                gift,
                GiftStatus.FAILED,
                failure_reason=(
                    f"Deposit {ref.txid}:{ref.vout} was spent by another transaction"
                ),
            )

        return await self._transition_or_conflict(
            gift,
            GiftStatus.AWAITING_DEPOSIT,
            deposit_ref=None,
            deposit_confirmations=0,
            pending_lock_txid=None,
            lock_vout=None,
            lock_address=None,
            redeem_script_hex=None,
            fee_sats=None,
            locked_sats=None,
            network_fee_sats=None,
            failure_kind=None,
            failure_reason=None,
            locking_started_at=None,
        )

    async def _transition_or_conflict(
        self, gift: Gift, new_status: GiftStatus, **fields: object
    ) -> Gift:
        updated = await self.gift_repository.transition(
            gift.id, gift.status, new_status, **fields
        )
        if updated is None:
            raise InvalidTransition(f"Gift {gift.id} changed state concurrently")
        logger.info(
            "Gift %s moved %s -> %s", gift.id, gift.status.value, new_status.value
        )
        return updated

    async def recover_stale_locking(
        self,
        max_age_seconds: int,
        *,
        now: Optional[datetime] = None,
        limit: int = 1000,
    ) -> SweepResultDTO:
        """Resolve gifts stuck in ``locking`` longer than ``max_age_seconds``.

        A gift whose signed transaction reached the network is ``locked``;
        anything else is ``failed`` with kind ``interrupted`` and can be
        retried by an operator.
        """
        current = now or datetime.now(timezone.utc)
        cutoff = current - timedelta(seconds=max_age_seconds)
        gifts = await self.gift_repository.list_by_status(GiftStatus.LOCKING, 0, limit)

        counts: dict[str, int] = {}
        processed = 0
        for gift in gifts:
            started = gift.locking_started_at or gift.updated_at or gift.created_at
            if started > cutoff:
                continue
            processed += 1

            if gift.pending_lock_txid:
                tx_status = await self.chain_provider.get_tx_status(
                    gift.pending_lock_txid
                )
                if tx_status.found:
                    updated = await self.gift_repository.transition(
                        gift.id,
                        GiftStatus.LOCKING,
                        GiftStatus.LOCKED,
                        lock_txid=gift.pending_lock_txid,
                        locked_at=current,
                    )
                    key = "locked" if updated else "conflict"
                    counts[key] = counts.get(key, 0) + 1
                    continue

            updated = await self.gift_repository.transition(
                gift.id,
                GiftStatus.LOCKING,
                GiftStatus.FAILED,
                failure_kind="interrupted",
                failure_reason=(
                    f"Lock did not complete within {max_age_seconds} seconds"
                ),
            )
            key = "failed" if updated else "conflict"
            counts[key] = counts.get(key, 0) + 1

        if processed:
            logger.warning("Recovered %d stale locking gifts: %s", processed, counts)
        return SweepResultDTO(processed=processed, outcomes=counts)
