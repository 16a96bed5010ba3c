"""Deposit notification routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...application.gift.dtos import DepositNotificationDTO, ReconcileResultDTO
from ...application.gift.use_cases.reconciler import DepositReconciler
from ...domain.errors import ConfigurationError, GiftNotFoundError
from ..dependencies import get_deposit_reconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/mempool", response_model=ReconcileResultDTO)
async def deposit_notification(
    payload: DepositNotificationDTO,
    reconciler: DepositReconciler = Depends(get_deposit_reconciler),
) -> ReconcileResultDTO:
    """Reconcile the gift owning the notified deposit address.

    Safe to call any number of times and concurrently with the sweep: only
    one invocation per gift ever broadcasts.
    """
    if payload.outpoint:
        logger.info(
            "Deposit notification for %s (outpoint %s)", payload.address, payload.outpoint
        )
    try:
        result = await reconciler.reconcile_address(payload.address)
    except GiftNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConfigurationError as e:
        logger.error("Deposit notification ignored: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )

    if payload.outpoint and result.outcome == "no_deposit":
        # Notified output is not eligible yet (unconfirmed or below minimum)
        logger.warning(
            "Notified outpoint %s for gift %s is not an eligible deposit yet",
            payload.outpoint,
            result.gift_id,
        )
    return result
