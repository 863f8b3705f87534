"""Geocoding endpoints."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.geocoding import (
    CacheStatsResponse,
    GeocodeRequest,
    GeocodeResponse,
    GeocodeResultModel,
    GeocodeSummary,
)
from ...services.geocoding.resolver import GeocodingResolver
from ..dependencies import get_geocoding_resolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/geocode", tags=["geocoding"])


@router.post("", response_model=GeocodeResponse, status_code=status.HTTP_200_OK)
async def geocode(
    payload: GeocodeRequest,
    resolver: GeocodingResolver = Depends(get_geocoding_resolver),
) -> GeocodeResponse:
    try:
        if payload.addresses:
            results = await resolver.resolve_batch(payload.addresses)
        else:
            results = [await resolver.resolve(payload.address)]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error geocoding addresses: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to geocode addresses: {str(exc)}",
        ) from exc

    successful = [result for result in results if result.coordinates is not None]
    return GeocodeResponse(
        results=[GeocodeResultModel(**asdict(result)) for result in results],
        summary=GeocodeSummary(
            total=len(results),
            successful=len(successful),
            failed=len(results) - len(successful),
            from_cache=sum(1 for result in results if result.from_cache),
            accuracy=dict(Counter(result.accuracy.value for result in successful)),
        ),
    )


@router.get("/cache", response_model=CacheStatsResponse, status_code=status.HTTP_200_OK)
def cache_stats(resolver: GeocodingResolver = Depends(get_geocoding_resolver)) -> CacheStatsResponse:
    return CacheStatsResponse(**resolver.cache_stats())


@router.delete("/cache", status_code=status.HTTP_200_OK)
def clear_cache(resolver: GeocodingResolver = Depends(get_geocoding_resolver)) -> dict:
    resolver.clear_cache()
    return {"success": True, "message": "Geocoding cache cleared"}
