"""Validation tests for gift creation - DTOs and pure validators."""

import unittest

from pydantic import ValidationError as PydanticValidationError

from lockgift.application.gift.dtos import (
    MAX_MESSAGE_LENGTH,
    CreateGiftDTO,
    MarkClaimedDTO,
)
from lockgift.application.gift.use_cases.gift_validators import (
    normalize_message,
    select_deposit_utxo,
    validate_gift_amount,
)
from lockgift.domain.errors import AmountBelowMinimum, ValidationError
from lockgift.domain.shared.chain_provider_protocol import Utxo


class TestCreateGiftDTOValidation(unittest.TestCase):
    """Test cases for CreateGiftDTO validation."""

    def test_valid_data(self):
        """Test CreateGiftDTO with valid data."""
        dto = CreateGiftDTO(
            amount_sats=100_000,
            beneficiary="tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx",
            unlock_timestamp=1_893_456_000,
            message="Happy birthday",
        )

        self.assertEqual(dto.amount_sats, 100_000)
        self.assertEqual(dto.message, "Happy birthday")

    def test_message_is_optional(self):
        """Test CreateGiftDTO without a message."""
        dto = CreateGiftDTO(
            amount_sats=100_000, beneficiary="tb1qexample", unlock_timestamp=1
        )
        self.assertIsNone(dto.message)

    def test_amount_must_be_positive(self):
        """Test CreateGiftDTO rejects zero amounts."""
        with self.assertRaises(PydanticValidationError) as context:
            CreateGiftDTO(amount_sats=0, beneficiary="tb1qexample", unlock_timestamp=1)

        errors = context.exception.errors()
        self.assertTrue(any("amount_sats" in str(error) for error in errors))

    def test_message_length_boundary(self):
        """Test CreateGiftDTO message length limit."""
        CreateGiftDTO(
            amount_sats=1,
            beneficiary="tb1qexample",
            unlock_timestamp=1,
            message="a" * MAX_MESSAGE_LENGTH,
        )
        with self.assertRaises(PydanticValidationError):
            CreateGiftDTO(
                amount_sats=1,
                beneficiary="tb1qexample",
                unlock_timestamp=1,
                message="a" * (MAX_MESSAGE_LENGTH + 1),
            )

    def test_claim_txid_length(self):
        """Test MarkClaimedDTO requires a 64 character txid."""
        self.assertEqual(MarkClaimedDTO(claim_txid="ab" * 32).claim_txid, "ab" * 32)
        with self.assertRaises(PydanticValidationError):
            MarkClaimedDTO(claim_txid="ab")


class TestGiftValidators(unittest.TestCase):
    """Test cases for the pure gift validators."""

    def test_amount_at_minimum_is_accepted(self):
        validate_gift_amount(10_000, 10_000)

    def test_amount_below_minimum_is_rejected(self):
        with self.assertRaises(AmountBelowMinimum):
            validate_gift_amount(9_999, 10_000)

    def test_amount_below_minimum_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            validate_gift_amount(1, 10_000)

    def test_normalize_message(self):
        self.assertEqual(normalize_message("  hi  "), "hi")
        self.assertIsNone(normalize_message("   "))
        self.assertIsNone(normalize_message(None))

    def test_normalize_message_too_long(self):
        with self.assertRaises(ValidationError):
            normalize_message("x" * (MAX_MESSAGE_LENGTH + 1))


def _utxo(amount: int, txid: str = "11" * 32, vout: int = 0, confirmations: int = 1):
    return Utxo(txid=txid, vout=vout, amount_sats=amount, confirmations=confirmations)


class TestSelectDepositUtxo(unittest.TestCase):
    """Test cases for deposit UTXO selection."""

    def test_no_utxos(self):
        self.assertIsNone(select_deposit_utxo([], 6000))

    def test_below_minimum_is_ignored(self):
        self.assertIsNone(select_deposit_utxo([_utxo(5999)], 6000))

    def test_exact_minimum_is_eligible(self):
        utxo = _utxo(6000)
        self.assertEqual(select_deposit_utxo([utxo], 6000), utxo)

    def test_largest_wins(self):
        small = _utxo(10_000, txid="aa" * 32)
        large = _utxo(50_000, txid="bb" * 32)
        self.assertEqual(select_deposit_utxo([small, large], 6000), large)

    def test_unconfirmed_excluded_when_confirmations_required(self):
        pending = _utxo(90_000, txid="aa" * 32, confirmations=0)
        confirmed = _utxo(20_000, txid="bb" * 32, confirmations=2)
        self.assertEqual(select_deposit_utxo([pending, confirmed], 6000, 1), confirmed)
        self.assertEqual(select_deposit_utxo([pending, confirmed], 6000, 0), pending)

    def test_ties_are_deterministic(self):
        first = _utxo(10_000, txid="aa" * 32, vout=1)
        second = _utxo(10_000, txid="aa" * 32, vout=0)
        third = _utxo(10_000, txid="99" * 32, vout=0)
        for ordering in ([first, second, third], [third, second, first]):
            self.assertEqual(select_deposit_utxo(ordering, 6000), second)


if __name__ == "__main__":
    unittest.main()
