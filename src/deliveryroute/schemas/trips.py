"""External trip-optimization request/response schemas."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class WaypointModel(BaseModel):
    coordinates: List[float] = Field(..., description="(lat, lon)")
    name: Optional[str] = None
    address: Optional[str] = None


class TripOptionsModel(BaseModel):
    profile: Literal["driving", "walking", "cycling"] = "driving"
    source: Literal["first", "any"] = "first"
    destination: Literal["last", "any"] = "last"
    roundtrip: bool = False
    annotations: Optional[List[str]] = None


class TripRequest(BaseModel):
    waypoints: List[WaypointModel]
    options: TripOptionsModel = Field(default_factory=TripOptionsModel)


class TripStepModel(BaseModel):
    distance: float
    duration: float
    instruction: str
    coordinates: List[List[float]]


class TripLegModel(BaseModel):
    distance: float
    duration: float
    steps: List[TripStepModel]


class OptimizedWaypointModel(BaseModel):
    coordinates: List[float]
    name: str
    address: Optional[str] = None
    input_index: int


class OptimizedTripModel(BaseModel):
    waypoints: List[OptimizedWaypointModel]
    distance: float
    duration: float
    geometry: List[List[float]]
    legs: List[TripLegModel]


class TripSummary(BaseModel):
    distance: str
    duration: str
    waypoints: int
    out_of_bounds_count: int


class TripResponse(BaseModel):
    success: bool = True
    data: OptimizedTripModel
    summary: TripSummary
