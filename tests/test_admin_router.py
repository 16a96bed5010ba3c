"""Unit tests for operator API routes."""

from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lockgift.api.dependencies import (
    get_deposit_reconciler,
    get_gift_service,
    get_settings_dependency,
)
from lockgift.api.routers.admin import router
from lockgift.application.gift.dtos import (
    GiftResponseDTO,
    GiftStatsDTO,
    SweepResultDTO,
)
from lockgift.domain.errors import (
    ConfigurationError,
    GiftNotFoundError,
    InvalidTransition,
    ProviderUnavailable,
)
from lockgift.domain.gift.entities import Gift, GiftStatus
from lockgift.env import Settings


@pytest.fixture
def test_setup():
    """Set up test fixtures."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")

    gift = Gift(
        deposit_address="tb1qdeposit",
        deposit_index=7,
        amount_requested_sats=100_000,
        beneficiary="tb1qbeneficiary",
        unlock_timestamp=1_893_456_000,
        fee_percent=Decimal("1.00"),
    )

    mock_service = AsyncMock()
    mock_reconciler = AsyncMock()
    app.dependency_overrides[get_gift_service] = lambda: mock_service
    app.dependency_overrides[get_deposit_reconciler] = lambda: mock_reconciler
    app.dependency_overrides[get_settings_dependency] = lambda: Settings(
        locking_lease_seconds=600
    )

    return {
        "client": TestClient(app),
        "gift": gift,
        "mock_service": mock_service,
        "mock_reconciler": mock_reconciler,
    }


def test_reconcile_pending(test_setup):
    test_setup["mock_reconciler"].reconcile_pending.return_value = SweepResultDTO(
        processed=3, outcomes={"locked": 1, "no_deposit": 2}
    )

    response = test_setup["client"].post("/api/v1/admin/reconcile?limit=50")

    assert response.status_code == 200
    assert response.json() == {"processed": 3, "outcomes": {"locked": 1, "no_deposit": 2}}
    test_setup["mock_reconciler"].reconcile_pending.assert_called_once_with(limit=50)


def test_reconcile_pending_without_configuration(test_setup):
    test_setup["mock_reconciler"].reconcile_pending.side_effect = ConfigurationError(
        "Fee address is not configured"
    )

    response = test_setup["client"].post("/api/v1/admin/reconcile")

    assert response.status_code == 503
    assert "Fee address" in response.json()["detail"]


def test_list_gifts_by_status(test_setup):
    test_setup["mock_service"].list_gifts.return_value = [
        GiftResponseDTO.from_gift(test_setup["gift"])
    ]

    response = test_setup["client"].get(
        "/api/v1/admin/gifts?status=awaiting_deposit&skip=0&limit=10"
    )

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["deposit_index"] == 7
    assert body[0]["deposit_txid"] is None
    test_setup["mock_service"].list_gifts.assert_called_once_with(
        status=GiftStatus.AWAITING_DEPOSIT, skip=0, limit=10
    )


def test_list_gifts_rejects_unknown_status(test_setup):
    response = test_setup["client"].get("/api/v1/admin/gifts?status=lost")

    assert response.status_code == 422


def test_stats(test_setup):
    test_setup["mock_service"].get_stats.return_value = GiftStatsDTO(
        total=2, by_status={"awaiting_deposit": 1, "locked": 1}
    )

    response = test_setup["client"].get("/api/v1/admin/stats")

    assert response.status_code == 200
    assert response.json()["total"] == 2


def test_retry_success(test_setup):
    gift = test_setup["gift"]
    test_setup["mock_reconciler"].retry_failed.return_value = gift

    response = test_setup["client"].post(f"/api/v1/admin/gifts/{gift.id}/retry")

    assert response.status_code == 200
    assert response.json()["status"] == "awaiting_deposit"
    test_setup["mock_reconciler"].retry_failed.assert_called_once_with(gift.id)


@pytest.mark.parametrize(
    "error, expected_status",
    [
        (GiftNotFoundError("missing"), 404),
        (InvalidTransition("Only failed gifts can be retried"), 409),
        (ProviderUnavailable("timeout"), 503),
    ],
)
def test_retry_errors(test_setup, error, expected_status):
    test_setup["mock_reconciler"].retry_failed.side_effect = error

    response = test_setup["client"].post(f"/api/v1/admin/gifts/{uuid4()}/retry")

    assert response.status_code == expected_status


def test_mark_claimed(test_setup):
    claimed = test_setup["gift"].model_copy(
        update={"status": GiftStatus.CLAIMED, "claim_txid": "cd" * 32}
    )
    test_setup["mock_service"].mark_claimed.return_value = GiftResponseDTO.from_gift(
        claimed
    )

    response = test_setup["client"].post(
        f"/api/v1/admin/gifts/{claimed.id}/claimed", json={"claim_txid": "cd" * 32}
    )

    assert response.status_code == 200
    assert response.json()["claim_txid"] == "cd" * 32
    gift_id, dto = test_setup["mock_service"].mark_claimed.call_args[0]
    assert gift_id == claimed.id
    assert dto.claim_txid == "cd" * 32


def test_mark_claimed_conflict(test_setup):
    test_setup["mock_service"].mark_claimed.side_effect = InvalidTransition(
        "Only locked gifts can be claimed"
    )

    response = test_setup["client"].post(
        f"/api/v1/admin/gifts/{uuid4()}/claimed", json={"claim_txid": "cd" * 32}
    )

    assert response.status_code == 409


def test_recover_stale_uses_configured_lease(test_setup):
    test_setup["mock_reconciler"].recover_stale_locking.return_value = SweepResultDTO(
        processed=1, outcomes={"failed": 1}
    )

    response = test_setup["client"].post("/api/v1/admin/recover-stale")

    assert response.status_code == 200
    test_setup["mock_reconciler"].recover_stale_locking.assert_called_once_with(600)


def test_recover_stale_with_explicit_age(test_setup):
    test_setup["mock_reconciler"].recover_stale_locking.return_value = SweepResultDTO(
        processed=0, outcomes={}
    )

    response = test_setup["client"].post("/api/v1/admin/recover-stale?max_age_seconds=60")

    assert response.status_code == 200
    test_setup["mock_reconciler"].recover_stale_locking.assert_called_once_with(60)
