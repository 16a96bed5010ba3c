"""Pure validation functions for gift creation and reconciliation.

These functions contain business rules that can be tested in isolation
without dependencies on repositories or infrastructure.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ....domain.errors import AmountBelowMinimum, ValidationError
from ....domain.shared.chain_provider_protocol import Utxo
from ..dtos import MAX_MESSAGE_LENGTH


def validate_gift_amount(amount_sats: int, min_amount_sats: int) -> None:
    """Validate the requested gift amount.

    Raises:
        AmountBelowMinimum: If the amount is below ``min_amount_sats``.
    """
    if amount_sats < min_amount_sats:
        raise AmountBelowMinimum(
            f"Gift amount {amount_sats} sats is below the minimum of "
            f"{min_amount_sats} sats"
        )


def normalize_message(message: Optional[str]) -> Optional[str]:
    """Strip the sender note; empty notes become None."""
    if message is None:
        return None
    stripped = message.strip()
    if not stripped:
        return None
    if len(stripped) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message must be at most {MAX_MESSAGE_LENGTH} characters"
        )
    return stripped


def select_deposit_utxo(
    utxos: Iterable[Utxo],
    min_deposit_sats: int,
    min_confirmations: int = 0,
) -> Optional[Utxo]:
    """Pick the deposit to lock: the largest eligible UTXO.

    Ties are broken by txid and vout so the choice is deterministic across
    concurrent triggers observing the same address.
    """
    eligible = [
        u
        for u in utxos
        if u.amount_sats >= min_deposit_sats and u.confirmations >= min_confirmations
    ]
    if not eligible:
        return None
    return max(eligible, key=lambda u: (u.amount_sats, u.txid, -u.vout))
