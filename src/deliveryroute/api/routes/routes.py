"""Route optimization endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.routing import RouteOptimizationRequest, RouteOptimizationResponse
from ...services.routing.service import RouteOptimizationService
from ..dependencies import get_route_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("/optimize", response_model=RouteOptimizationResponse, status_code=status.HTTP_200_OK)
async def optimize(
    payload: RouteOptimizationRequest,
    service: RouteOptimizationService = Depends(get_route_service),
) -> RouteOptimizationResponse:
    """Sequence the given deliveries for one driver.

    Problems with the deliveries themselves come back inside the result
    (``is_valid``, ``errors``, ``warnings``); only unexpected failures map to
    an error status.
    """
    try:
        return await service.optimize(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error optimizing route: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to optimize route: {str(exc)}",
        ) from exc
