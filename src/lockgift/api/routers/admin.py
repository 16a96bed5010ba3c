"""Operator routes. Authentication is provided by the deployment."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ...application.gift.dtos import (
    GiftResponseDTO,
    GiftStatsDTO,
    MarkClaimedDTO,
    SweepResultDTO,
)
from ...application.gift.use_cases.gift import GiftService
from ...application.gift.use_cases.reconciler import DepositReconciler
from ...domain.errors import (
    BroadcastError,
    ConfigurationError,
    GiftNotFoundError,
    InvalidTransition,
)
from ...domain.gift.entities import GiftStatus
from ...env import Settings
from ..dependencies import (
    get_deposit_reconciler,
    get_gift_service,
    get_settings_dependency,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reconcile", response_model=SweepResultDTO)
async def reconcile_pending(
    limit: Optional[int] = Query(None, ge=1, le=10000),
    reconciler: DepositReconciler = Depends(get_deposit_reconciler),
) -> SweepResultDTO:
    """Run one reconciliation pass over every gift awaiting a deposit."""
    try:
        return await reconciler.reconcile_pending(limit=limit)
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )


@router.get("/gifts", response_model=List[GiftResponseDTO])
async def list_gifts(
    gift_status: Optional[GiftStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    gift_service: GiftService = Depends(get_gift_service),
) -> List[GiftResponseDTO]:
    return await gift_service.list_gifts(status=gift_status, skip=skip, limit=limit)


@router.get("/stats", response_model=GiftStatsDTO)
async def get_stats(
    gift_service: GiftService = Depends(get_gift_service),
) -> GiftStatsDTO:
    return await gift_service.get_stats()


@router.post("/gifts/{gift_id}/retry", response_model=GiftResponseDTO)
async def retry_gift(
    gift_id: UUID = Path(..., description="Gift identifier"),
    reconciler: DepositReconciler = Depends(get_deposit_reconciler),
) -> GiftResponseDTO:
    """Re-examine a failed gift against the chain."""
    try:
        gift = await reconciler.retry_failed(gift_id)
    except GiftNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except BroadcastError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )
    return GiftResponseDTO.from_gift(gift)


@router.post("/gifts/{gift_id}/claimed", response_model=GiftResponseDTO)
async def mark_gift_claimed(
    payload: MarkClaimedDTO,
    gift_id: UUID = Path(..., description="Gift identifier"),
    gift_service: GiftService = Depends(get_gift_service),
) -> GiftResponseDTO:
    """Record the beneficiary's claim transaction for a locked gift."""
    try:
        return await gift_service.mark_claimed(gift_id, payload)
    except GiftNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/recover-stale", response_model=SweepResultDTO)
async def recover_stale_locking(
    max_age_seconds: Optional[int] = Query(None, ge=1),
    reconciler: DepositReconciler = Depends(get_deposit_reconciler),
    settings: Settings = Depends(get_settings_dependency),
) -> SweepResultDTO:
    """Resolve gifts stuck in ``locking`` beyond the lease."""
    lease = max_age_seconds or settings.locking_lease_seconds
    try:
        return await reconciler.recover_stale_locking(lease)
    except BroadcastError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )
