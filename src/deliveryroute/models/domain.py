"""Domain models for deliveries, vehicles, traffic and route results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

LatLon = tuple[float, float]


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class Accuracy(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CongestionLevel(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


@dataclass(frozen=True, slots=True)
class DeliveryWindow:
    start: datetime
    end: datetime
    priority: Priority = Priority.NORMAL


@dataclass(frozen=True, slots=True)
class DeliveryStop:
    """A single delivery destination. Never mutated by the optimizer."""

    id: str
    coordinates: Optional[LatLon]
    estimated_service_time: float = 5.0
    priority: Priority = Priority.NORMAL
    time_window: Optional[DeliveryWindow] = None
    package_weight: Optional[float] = None
    special_requirements: tuple[str, ...] = ()
    address: Optional[str] = None

    @property
    def weight(self) -> float:
        return self.package_weight if self.package_weight else 1.0


@dataclass(frozen=True, slots=True)
class WorkingHours:
    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class VehicleConstraints:
    max_capacity: float
    current_load: float
    max_deliveries: int
    working_hours: WorkingHours


@dataclass(slots=True)
class TrafficCondition:
    segment_index: int
    delay_factor: float
    congestion_level: CongestionLevel


@dataclass(slots=True)
class GeocodeCacheEntry:
    """Cached geocode for a normalized address. Timestamps are epoch seconds."""

    coordinates: LatLon
    accuracy: Accuracy
    confidence: float
    city: str
    country: str
    formatted_address: str
    created_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    def to_record(self) -> dict:
        return {
            "coordinates": list(self.coordinates),
            "accuracy": self.accuracy.value,
            "confidence": self.confidence,
            "city": self.city,
            "country": self.country,
            "formatted_address": self.formatted_address,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_record(cls, record: dict) -> "GeocodeCacheEntry":
        lat, lon = record["coordinates"]
        return cls(
            coordinates=(float(lat), float(lon)),
            accuracy=Accuracy(record.get("accuracy", Accuracy.LOW.value)),
            confidence=float(record.get("confidence", 0.0)),
            city=record.get("city") or "Unknown",
            country=record.get("country") or "Unknown",
            formatted_address=record.get("formatted_address") or "",
            created_at=float(record["created_at"]),
            expires_at=float(record["expires_at"]),
        )


@dataclass(slots=True)
class GeocodeResult:
    address: str
    coordinates: Optional[LatLon]
    accuracy: Accuracy
    confidence: float = 0.0
    from_cache: bool = False
    city: Optional[str] = None
    country: Optional[str] = None
    formatted_address: Optional[str] = None
    provider: Optional[str] = None


@dataclass(slots=True)
class OptimizationResult:
    route: list[int]
    total_distance: float
    total_time: float
    algorithm: str
    iterations: int = 0
    improvement: int = 0
    estimated_arrival_times: list[datetime] = field(default_factory=list)
    traffic_adjustments: list[float] = field(default_factory=list)
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    attempted_algorithms: list[str] = field(default_factory=list)
