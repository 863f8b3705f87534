"""Trip optimization domain models. Coordinates are (lat, lon)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

from ...models.domain import LatLon

Profile = Literal["driving", "walking", "cycling"]
SUPPORTED_PROFILES: tuple[str, ...] = ("driving", "walking", "cycling")


@dataclass(slots=True)
class Waypoint:
    coordinates: LatLon
    name: Optional[str] = None
    address: Optional[str] = None


@dataclass(slots=True)
class TripOptimizationOptions:
    profile: Profile = "driving"
    source: Literal["first", "any"] = "first"
    destination: Literal["last", "any"] = "last"
    roundtrip: bool = False
    annotations: Optional[List[str]] = None


@dataclass(slots=True)
class TripStep:
    distance: float
    duration: float
    instruction: str
    coordinates: List[LatLon]


@dataclass(slots=True)
class TripLeg:
    distance: float
    duration: float
    steps: List[TripStep]


@dataclass(slots=True)
class OptimizedWaypoint:
    coordinates: LatLon
    name: str
    address: Optional[str]
    input_index: int


@dataclass(slots=True)
class OptimizedTrip:
    """Provider answer: distance in metres, duration in seconds."""

    waypoints: List[OptimizedWaypoint]
    distance: float
    duration: float
    geometry: List[LatLon] = field(default_factory=list)
    legs: List[TripLeg] = field(default_factory=list)
