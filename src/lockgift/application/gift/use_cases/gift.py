"""Use cases for creating, inspecting and closing out gifts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from ....bitcoin.keys import KeyDeriver
from ....bitcoin.lockscript import beneficiary_pubkey_hash, validate_unlock_timestamp
from ....bitcoin.network import BitcoinNetwork
from ....domain.errors import GiftNotFoundError, InvalidTransition
from ....domain.gift.entities import Gift, GiftStatus
from ....domain.gift.repositories import GiftRepository
from ..dtos import (
    CreateGiftDTO,
    GiftCreatedDTO,
    GiftResponseDTO,
    GiftStatsDTO,
    GiftStatusDTO,
    MarkClaimedDTO,
)
from .gift_validators import normalize_message, validate_gift_amount

logger = logging.getLogger(__name__)


class GiftService:
    """Service for gift-related operations."""

    def __init__(
        self,
        gift_repository: GiftRepository,
        key_deriver: KeyDeriver,
        network: BitcoinNetwork,
        fee_percent: Decimal,
        min_gift_amount_sats: int,
        max_horizon_seconds: int,
    ):
        self.gift_repository = gift_repository
        self.key_deriver = key_deriver
        self.network = network
        self.fee_percent = fee_percent
        self.min_gift_amount_sats = min_gift_amount_sats
        self.max_horizon_seconds = max_horizon_seconds

    async def create_gift(
        self, dto: CreateGiftDTO, *, now: Optional[int] = None
    ) -> GiftCreatedDTO:
        """Validate the request, allocate a deposit index and store the gift.

        All validation happens before the index is allocated so a rejected
        request never consumes an index.
        """
        validate_gift_amount(dto.amount_sats, self.min_gift_amount_sats)
        beneficiary = dto.beneficiary.strip()
        beneficiary_pubkey_hash(beneficiary, self.network)
        validate_unlock_timestamp(
            dto.unlock_timestamp,
            now=now,
            max_horizon_seconds=self.max_horizon_seconds,
        )
        message = normalize_message(dto.message)

        index = await self.gift_repository.allocate_next_index()
        deposit_address = self.key_deriver.deposit_address(index)

        gift = Gift(
            deposit_address=deposit_address,
            deposit_index=index,
            amount_requested_sats=dto.amount_sats,
            beneficiary=beneficiary,
            unlock_timestamp=dto.unlock_timestamp,
            fee_percent=self.fee_percent,
            message=message,
        )
        created = await self.gift_repository.create(gift)
        logger.info(
            "Created gift %s at deposit index %d (%s)",
            created.id,
            index,
            deposit_address,
        )

        return GiftCreatedDTO(
            id=created.id,
            deposit_address=created.deposit_address,
            amount_sats=created.amount_requested_sats,
            unlock_timestamp=created.unlock_timestamp,
            fee_percent=created.fee_percent,
            status=created.status,
        )

    async def get_gift(self, gift_id: UUID) -> Gift:
        gift = await self.gift_repository.get_by_id(gift_id)
        if gift is None:
            raise GiftNotFoundError(f"Gift {gift_id} not found")
        return gift

    async def get_status(self, gift_id: UUID) -> GiftStatusDTO:
        return GiftStatusDTO.from_gift(await self.get_gift(gift_id))

    async def list_gifts(
        self,
        status: Optional[GiftStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[GiftResponseDTO]:
        """List gifts newest first, optionally filtered by status."""
        if status is None:
            gifts = await self.gift_repository.list_all(skip=skip, limit=limit)
        else:
            gifts = await self.gift_repository.list_by_status(
                status, skip=skip, limit=limit
            )
        return [GiftResponseDTO.from_gift(g) for g in gifts]

    async def mark_claimed(self, gift_id: UUID, dto: MarkClaimedDTO) -> GiftResponseDTO:
        """Record that the beneficiary spent the locked output."""
        gift = await self.get_gift(gift_id)
        if gift.status != GiftStatus.LOCKED:
            raise InvalidTransition(
                f"Only locked gifts can be claimed; gift is {gift.status.value}"
            )

        updated = await self.gift_repository.transition(
            gift_id,
            GiftStatus.LOCKED,
            GiftStatus.CLAIMED,
            claim_txid=dto.claim_txid.lower(),
            claimed_at=datetime.now(timezone.utc),
        )
        if updated is None:
            raise InvalidTransition("Gift changed state concurrently")
        logger.info("Gift %s claimed by %s", gift_id, updated.claim_txid)
        return GiftResponseDTO.from_gift(updated)

    async def get_stats(self) -> GiftStatsDTO:
        counts = await self.gift_repository.count_by_status()
        by_status = {status.value: counts.get(status, 0) for status in GiftStatus}
        return GiftStatsDTO(total=sum(by_status.values()), by_status=by_status)
