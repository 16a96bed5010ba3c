"""Gift domain entities: Gift, GiftStatus and DepositRef."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator

FEE_PERCENT_QUANTUM = Decimal("0.01")


class GiftStatus(str, Enum):
    """Lifecycle of a gift. Transitions never move backwards."""

    AWAITING_DEPOSIT = "awaiting_deposit"
    LOCKING = "locking"
    LOCKED = "locked"
    CLAIMED = "claimed"
    EXPIRED = "expired"
    FAILED = "failed"


# Allowed transitions, keyed by the current status.
# failed -> awaiting_deposit is the operator retry path; locking -> locking
# records the signed txid before broadcast.
ALLOWED_TRANSITIONS: dict[GiftStatus, frozenset[GiftStatus]] = {
    GiftStatus.AWAITING_DEPOSIT: frozenset({GiftStatus.LOCKING, GiftStatus.EXPIRED}),
    GiftStatus.LOCKING: frozenset(
        {GiftStatus.LOCKING, GiftStatus.LOCKED, GiftStatus.FAILED}
    ),
    GiftStatus.LOCKED: frozenset({GiftStatus.CLAIMED}),
    GiftStatus.FAILED: frozenset(
        {GiftStatus.FAILED, GiftStatus.AWAITING_DEPOSIT, GiftStatus.LOCKED}
    ),
    GiftStatus.CLAIMED: frozenset(),
    GiftStatus.EXPIRED: frozenset(),
}


def can_transition(current: GiftStatus, new: GiftStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def normalize_fee_percent(value: Decimal | int | float | str) -> Decimal:
    """Return a fee percent with exactly two fractional digits.

    Values with finer precision are rejected rather than rounded.
    """
    try:
        raw = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid fee percent: {value!r}") from e
    if not raw.is_finite():
        raise ValueError(f"Invalid fee percent: {value!r}")
    percent = raw.quantize(FEE_PERCENT_QUANTUM)
    if percent != raw:
        raise ValueError(f"Fee percent {raw} has more than two decimal places")
    if percent < 0 or percent >= 100:
        raise ValueError(f"Fee percent must be in [0, 100), got {percent}")
    return percent


class DepositRef(BaseModel):
    """The deposit output a gift was bound to when its lock was claimed."""

    txid: str
    vout: int
    amount_sats: int

    @field_validator("txid")
    @classmethod
    def lowercase_txid(cls, v: str) -> str:
        return v.lower()


class Gift(BaseModel):
    """A time-locked gift and its lock transaction state."""

    id: UUID = Field(default_factory=uuid4)
    deposit_address: str
    deposit_index: int = Field(ge=0)
    amount_requested_sats: int
    beneficiary: str
    unlock_timestamp: int
    fee_percent: Decimal
    message: Optional[str] = None
    status: GiftStatus = GiftStatus.AWAITING_DEPOSIT
    revision: int = 0

    deposit_ref: Optional[DepositRef] = None
    deposit_confirmations: int = 0

    pending_lock_txid: Optional[str] = None
    lock_txid: Optional[str] = None
    lock_vout: Optional[int] = None
    lock_address: Optional[str] = None
    redeem_script_hex: Optional[str] = None
    fee_sats: Optional[int] = None
    locked_sats: Optional[int] = None
    network_fee_sats: Optional[int] = None

    failure_kind: Optional[str] = None
    failure_reason: Optional[str] = None

    claim_txid: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    locking_started_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None

    @field_validator("fee_percent", mode="before")
    @classmethod
    def validate_fee_percent(cls, v: Decimal | int | float | str) -> Decimal:
        return normalize_fee_percent(v)

    @field_validator("pending_lock_txid", "lock_txid", "claim_txid")
    @classmethod
    def lowercase_txids(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("fee_percent")
    def serialize_fee_percent(self, value: Decimal) -> str:
        return str(value.quantize(FEE_PERCENT_QUANTUM))

    @field_serializer(
        "created_at", "updated_at", "locking_started_at", "locked_at", "claimed_at"
    )
    def serialize_timestamps(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None
