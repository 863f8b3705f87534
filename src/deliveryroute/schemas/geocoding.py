"""Geocoding request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.domain import Accuracy


class GeocodeRequest(BaseModel):
    address: Optional[str] = None
    addresses: Optional[List[str]] = None

    @model_validator(mode="after")
    def _require_input(self) -> "GeocodeRequest":
        if not self.address and not self.addresses:
            raise ValueError("Either 'address' or 'addresses' is required")
        return self


class GeocodeResultModel(BaseModel):
    address: str
    coordinates: Optional[List[float]] = None
    accuracy: Accuracy
    confidence: float = 0.0
    from_cache: bool = False
    city: Optional[str] = None
    country: Optional[str] = None
    formatted_address: Optional[str] = None
    provider: Optional[str] = None


class GeocodeSummary(BaseModel):
    total: int
    successful: int
    failed: int
    from_cache: int
    accuracy: Dict[str, int] = Field(default_factory=dict)


class GeocodeResponse(BaseModel):
    results: List[GeocodeResultModel]
    summary: GeocodeSummary


class CacheStatsResponse(BaseModel):
    total: int
    expired: int
    hits: int
    misses: int
    hit_rate: float
    requests: int = 0
    accuracy: Dict[str, int]
    average_confidence: float
    cities: Dict[str, int]
    size: str
