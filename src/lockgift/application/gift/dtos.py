"""Data Transfer Objects for the gift application layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ...domain.gift.entities import Gift, GiftStatus

MAX_MESSAGE_LENGTH = 500


class CreateGiftDTO(BaseModel):
    """DTO for creating a gift."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount_sats": 100000,
                "beneficiary": "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx",
                "unlock_timestamp": 1893456000,
                "message": "Happy 18th birthday!",
            }
        }
    )

    amount_sats: int = Field(..., gt=0)
    beneficiary: str = Field(..., min_length=1, max_length=130)
    unlock_timestamp: int
    message: Optional[str] = Field(None, max_length=MAX_MESSAGE_LENGTH)


class GiftCreatedDTO(BaseModel):
    """DTO returned after a gift is created: where the sender should pay."""

    id: UUID
    deposit_address: str
    amount_sats: int
    unlock_timestamp: int
    fee_percent: Decimal
    status: GiftStatus

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("fee_percent")
    def serialize_fee_percent(self, value: Decimal) -> str:
        return str(value)


class GiftStatusDTO(BaseModel):
    """Public status view of a gift."""

    id: UUID
    status: GiftStatus
    deposit_address: str
    unlock_timestamp: int
    deposit_confirmations: int = 0
    lock_txid: Optional[str] = None
    lock_address: Optional[str] = None
    locked_amount_sats: Optional[int] = None
    fee_sats: Optional[int] = None
    failure_reason: Optional[str] = None

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @classmethod
    def from_gift(cls, gift: Gift) -> "GiftStatusDTO":
        return cls(
            id=gift.id,
            status=gift.status,
            deposit_address=gift.deposit_address,
            unlock_timestamp=gift.unlock_timestamp,
            deposit_confirmations=gift.deposit_confirmations,
            lock_txid=gift.lock_txid,
            lock_address=gift.lock_address,
            locked_amount_sats=gift.locked_sats,
            fee_sats=gift.fee_sats,
            failure_reason=gift.failure_reason,
        )


class GiftResponseDTO(BaseModel):
    """Full gift record for the admin surface."""

    id: UUID
    status: GiftStatus
    deposit_address: str
    deposit_index: int
    amount_requested_sats: int
    beneficiary: str
    unlock_timestamp: int
    fee_percent: Decimal
    message: Optional[str]
    deposit_txid: Optional[str]
    deposit_vout: Optional[int]
    deposit_amount_sats: Optional[int]
    deposit_confirmations: int
    pending_lock_txid: Optional[str]
    lock_txid: Optional[str]
    lock_address: Optional[str]
    fee_sats: Optional[int]
    locked_sats: Optional[int]
    network_fee_sats: Optional[int]
    failure_kind: Optional[str]
    failure_reason: Optional[str]
    claim_txid: Optional[str]
    created_at: datetime
    locked_at: Optional[datetime]
    claimed_at: Optional[datetime]

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("fee_percent")
    def serialize_fee_percent(self, value: Decimal) -> str:
        return str(value)

    @field_serializer("created_at", "locked_at", "claimed_at")
    def serialize_timestamps(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @classmethod
    def from_gift(cls, gift: Gift) -> "GiftResponseDTO":
        ref = gift.deposit_ref
        return cls(
            id=gift.id,
            status=gift.status,
            deposit_address=gift.deposit_address,
            deposit_index=gift.deposit_index,
            amount_requested_sats=gift.amount_requested_sats,
            beneficiary=gift.beneficiary,
            unlock_timestamp=gift.unlock_timestamp,
            fee_percent=gift.fee_percent,
            message=gift.message,
            deposit_txid=ref.txid if ref else None,
            deposit_vout=ref.vout if ref else None,
            deposit_amount_sats=ref.amount_sats if ref else None,
            deposit_confirmations=gift.deposit_confirmations,
            pending_lock_txid=gift.pending_lock_txid,
            lock_txid=gift.lock_txid,
            lock_address=gift.lock_address,
            fee_sats=gift.fee_sats,
            locked_sats=gift.locked_sats,
            network_fee_sats=gift.network_fee_sats,
            failure_kind=gift.failure_kind,
            failure_reason=gift.failure_reason,
            claim_txid=gift.claim_txid,
            created_at=gift.created_at,
            locked_at=gift.locked_at,
            claimed_at=gift.claimed_at,
        )


class GiftStatsDTO(BaseModel):
    """Gift counts per lifecycle status."""

    total: int
    by_status: dict[str, int]


class MarkClaimedDTO(BaseModel):
    """DTO for recording the beneficiary's claim transaction."""

    claim_txid: str = Field(..., min_length=64, max_length=64)


class DepositNotificationDTO(BaseModel):
    """Push notification that a deposit address received funds."""

    address: str = Field(..., min_length=1)
    txid: Optional[str] = Field(None, pattern=r"^[0-9a-fA-F]{64}$")
    vout: Optional[int] = Field(None, ge=0)

    @property
    def outpoint(self) -> Optional[str]:
        if self.txid is None:
            return None
        return f"{self.txid.lower()}:{self.vout if self.vout is not None else 0}"


class ReconcileResultDTO(BaseModel):
    """Outcome of reconciling a single gift."""

    gift_id: UUID
    outcome: str

    @field_serializer("gift_id")
    def serialize_gift_id(self, value: UUID) -> str:
        return str(value)


class SweepResultDTO(BaseModel):
    """Outcome counts of a reconciliation pass."""

    processed: int
    outcomes: dict[str, int]
