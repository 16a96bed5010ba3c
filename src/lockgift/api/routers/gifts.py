"""Gift API routes (public)."""

from __future__ import annotations

import logging
import time
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status
from prometheus_client import Counter, Histogram

from ...application.gift.dtos import CreateGiftDTO, GiftCreatedDTO, GiftStatusDTO
from ...application.gift.use_cases.gift import GiftService
from ...domain.errors import GiftNotFoundError, ValidationError
from ..dependencies import get_gift_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gifts", tags=["gifts"])


gift_requests_total = Counter(
    "lockgift_gift_requests_total",
    "Total gift creation requests processed",
    ["status"],
)

gift_request_duration_seconds = Histogram(
    "lockgift_gift_request_duration_seconds",
    "Wall time to process a gift creation request",
    ["status"],
)


@router.post(
    "/",
    response_model=GiftCreatedDTO,
    status_code=status.HTTP_201_CREATED,
)
async def create_gift(
    payload: CreateGiftDTO,
    gift_service: GiftService = Depends(get_gift_service),
) -> GiftCreatedDTO:
    """Create a gift and return the deposit address the sender should fund."""
    start_time = time.perf_counter()
    try:
        result = await gift_service.create_gift(payload)
        gift_requests_total.labels(status="success").inc()
        elapsed = time.perf_counter() - start_time
        gift_request_duration_seconds.labels(status="success").observe(elapsed)
        return result
    except ValidationError as e:
        gift_requests_total.labels(status="client_error").inc()
        elapsed = time.perf_counter() - start_time
        gift_request_duration_seconds.labels(status="client_error").observe(elapsed)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        gift_requests_total.labels(status="server_error").inc()
        elapsed = time.perf_counter() - start_time
        gift_request_duration_seconds.labels(status="server_error").observe(elapsed)
        logger.exception("Failed to create gift")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create gift: {str(e)}",
        )


@router.get("/{gift_id}/status", response_model=GiftStatusDTO)
async def get_gift_status(
    gift_id: UUID = Path(..., description="Gift identifier"),
    gift_service: GiftService = Depends(get_gift_service),
) -> GiftStatusDTO:
    """Current lifecycle status of a gift."""
    try:
        return await gift_service.get_status(gift_id)
    except GiftNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
