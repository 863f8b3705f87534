"""Route optimization request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.domain import Priority


class DeliveryWindowModel(BaseModel):
    start: datetime
    end: datetime
    priority: Priority = Priority.NORMAL


class DeliveryRecord(BaseModel):
    """One delivery as supplied by the caller. Records without coordinates are geocoded from ``address``."""

    id: str
    address: Optional[str] = None
    coordinates: Optional[List[float]] = Field(default=None, description="(lat, lon)")
    estimated_service_time: float = Field(default=5.0, ge=0)
    priority: Priority = Priority.NORMAL
    time_window: Optional[DeliveryWindowModel] = None
    package_weight: Optional[float] = Field(default=None, ge=0)
    special_requirements: List[str] = Field(default_factory=list)


class WorkingHoursModel(BaseModel):
    start: datetime
    end: datetime


class VehicleConstraintsModel(BaseModel):
    max_capacity: float
    current_load: float = 0.0
    max_deliveries: int = Field(default=100, ge=1)
    working_hours: WorkingHoursModel


class RouteOptimizationRequest(BaseModel):
    driver_location: List[float] = Field(..., description="(lat, lon) of the driver")
    deliveries: List[DeliveryRecord]
    vehicle_constraints: Optional[VehicleConstraintsModel] = None
    current_time: Optional[datetime] = None
    local_improvement: Optional[bool] = Field(
        default=None,
        description="Run 2-opt on the winning route. Defaults to the server setting.",
    )
    persist: bool = False
    run_label: Optional[str] = Field(default=None, description="Friendly name for persisted outputs.")

    @model_validator(mode="after")
    def _check_batch(self) -> "RouteOptimizationRequest":
        ids = [record.id for record in self.deliveries]
        if len(ids) != len(set(ids)):
            raise ValueError("Delivery ids must be unique")
        return self


class RouteStopModel(BaseModel):
    sequence: int
    index: int
    delivery_id: str
    coordinates: Optional[List[float]]
    estimated_arrival: Optional[datetime]
    traffic_adjustment: Optional[float]


class OptimizationResultModel(BaseModel):
    route: List[int]
    total_distance: float
    total_time: float
    algorithm: str
    iterations: int
    improvement: int
    estimated_arrival_times: List[datetime]
    traffic_adjustments: List[float]
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    attempted_algorithms: List[str]


class GeocodingSummary(BaseModel):
    requested: int = 0
    resolved: int = 0
    failed: List[str] = Field(default_factory=list)


class RouteOptimizationResponse(BaseModel):
    result: OptimizationResultModel
    stops: List[RouteStopModel]
    geocoding: GeocodingSummary
    output_dir: Optional[str] = None
