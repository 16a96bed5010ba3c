"""Domain-specific exceptions.

Two families matter to callers: ``ValidationError`` is caller-fixable and is
raised before any state change, while ``ConfigurationError``,
``ConstructionError`` and ``BroadcastError`` are operator-fixable.
"""

from __future__ import annotations


class LockGiftError(Exception):
    """Base class for all LockGift errors."""


class ValidationError(LockGiftError):
    """Raised when caller-supplied input is rejected."""


class InvalidSeed(ValidationError):
    """Raised when the HD seed is not valid hex of an acceptable length."""


class UnsupportedNetwork(ValidationError):
    """Raised when a network name is not known."""


class InvalidDerivationIndex(ValidationError):
    """Raised when a derivation index is outside the non-hardened range."""


class InvalidBeneficiary(ValidationError):
    """Raised when the beneficiary key material cannot yield a pubkey hash."""


class UnlockTimeOutOfRange(ValidationError):
    """Raised when an unlock timestamp is not a usable future time."""


class AmountBelowMinimum(ValidationError):
    """Raised when a requested gift amount is below the accepted minimum."""


class InvalidFeePercent(ValidationError):
    """Raised when a fee percentage is outside [0, 100)."""


class ConfigurationError(LockGiftError):
    """Raised when required operator configuration is missing."""


class GiftNotFoundError(LockGiftError):
    """Raised when a gift lookup fails."""


class ConcurrencyConflict(LockGiftError):
    """Raised when a conditional ledger update loses to a concurrent writer."""


class InvalidTransition(LockGiftError):
    """Raised when an operator requests a transition the lifecycle forbids."""


class ConstructionError(LockGiftError):
    """Raised when the splitting transaction cannot be built."""


class AmountTooSmall(ConstructionError):
    """Raised when an output would be empty or below the dust threshold."""


class SigningError(ConstructionError):
    """Raised when the produced signature does not verify."""


class BroadcastError(LockGiftError):
    """Raised when a finalized transaction could not be submitted."""


class BroadcastRejected(BroadcastError):
    """Raised when the network refuses the transaction."""

    def __init__(self, reason: str):
        super().__init__(f"Broadcast rejected: {reason}")
        self.reason = reason


class ProviderUnavailable(BroadcastError):
    """Raised when the chain provider cannot be reached."""
