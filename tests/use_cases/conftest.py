"""Pytest fixtures for use case tests."""

from __future__ import annotations

import pytest

from lockgift.application.gift.use_cases.gift import GiftService
from tests.fixtures import FakeChainProvider
from tests.use_cases.helpers import SenderActor


@pytest.fixture
def sender(
    gift_service: GiftService,
    chain_provider: FakeChainProvider,
    beneficiary_address: str,
    unlock_timestamp: int,
) -> SenderActor:
    """Sender paying gifts to the shared test beneficiary."""
    return SenderActor(gift_service, chain_provider, beneficiary_address, unlock_timestamp)
