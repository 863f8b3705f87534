"""Geocoding provider request builders and response parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence
from urllib.parse import quote

from ...config import settings
from ...models.domain import Accuracy, LatLon


@dataclass(slots=True)
class ProviderMatch:
    coordinates: LatLon
    relevance: float
    accuracy: Accuracy
    city: str
    country: str
    formatted_address: str
    provider: str


class GeocodingProvider(ABC):
    """Translate an address into one HTTP request and parse the first match.

    Providers do no I/O themselves; the resolver owns the HTTP client, the
    rate limiter and the retry loop.
    """

    name: str = "provider"
    # Whether matches below the resolver's relevance threshold should fall through.
    enforces_relevance: bool = True

    @abstractmethod
    def build_request(self, address: str) -> tuple[str, dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def parse(self, payload: Any) -> ProviderMatch | None:
        raise NotImplementedError


class MapboxGeocoder(GeocodingProvider):
    """Precise geocoder biased towards the depot and restricted to one country."""

    name = "mapbox"

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        country: str | None = None,
        proximity: Sequence[float] | None = None,
    ) -> None:
        self.access_token = access_token or settings.mapbox_access_token
        if not self.access_token:
            raise ValueError("Mapbox access token is not configured.")
        self.base_url = (base_url or settings.mapbox_geocoding_url).rstrip("/")
        self.country = country or settings.geocode_country
        self.proximity = tuple(proximity or settings.service_center)

    def build_request(self, address: str) -> tuple[str, dict[str, Any]]:
        lat, lon = self.proximity
        url = f"{self.base_url}/{quote(address, safe='')}.json"
        params = {
            "access_token": self.access_token,
            "limit": 1,
            "country": self.country,
            "proximity": f"{lon},{lat}",
        }
        return url, params

    def parse(self, payload: Any) -> ProviderMatch | None:
        features = payload.get("features") if isinstance(payload, dict) else None
        if not features:
            return None
        feature = features[0]
        lon, lat = feature["center"]
        relevance = float(feature.get("relevance", 0.0))
        if relevance > 0.8:
            accuracy = Accuracy.HIGH
        elif relevance > 0.5:
            accuracy = Accuracy.MEDIUM
        else:
            accuracy = Accuracy.LOW

        city, country = "Unknown", "Unknown"
        for item in feature.get("context") or []:
            if not isinstance(item, dict):
                continue
            item_id = str(item.get("id", ""))
            if item_id.startswith("place") and city == "Unknown":
                city = item.get("text", city)
            elif item_id.startswith("country"):
                country = item.get("text", country)

        return ProviderMatch(
            coordinates=(float(lat), float(lon)),
            relevance=relevance,
            accuracy=accuracy,
            city=city,
            country=country,
            formatted_address=feature.get("place_name", ""),
            provider=self.name,
        )


class NominatimGeocoder(GeocodingProvider):
    """OpenStreetMap search bounded to the service viewbox."""

    name = "nominatim"
    enforces_relevance = False

    def __init__(
        self,
        base_url: str | None = None,
        country: str | None = None,
        viewbox: Sequence[float] | None = None,
    ) -> None:
        self.base_url = base_url or settings.nominatim_url
        self.country = country or settings.geocode_country
        self.viewbox = tuple(viewbox or settings.geocode_viewbox)

    def build_request(self, address: str) -> tuple[str, dict[str, Any]]:
        params = {
            "format": "json",
            "q": address,
            "limit": 1,
            "addressdetails": 1,
            "countrycodes": self.country,
            "bounded": 1,
            "viewbox": ",".join(str(edge) for edge in self.viewbox),
        }
        return self.base_url, params

    def parse(self, payload: Any) -> ProviderMatch | None:
        if not isinstance(payload, list) or not payload:
            return None
        match = payload[0]
        try:
            lat = float(match["lat"])
            lon = float(match["lon"])
        except (KeyError, TypeError, ValueError):
            return None

        importance = float(match.get("importance") or 0.0)
        details = match.get("address") or {}
        city = (
            details.get("city")
            or details.get("town")
            or details.get("municipality")
            or details.get("suburb")
            or "Unknown"
        )
        return ProviderMatch(
            coordinates=(lat, lon),
            relevance=min(max(importance, 0.0), 1.0),
            accuracy=Accuracy.HIGH if importance > 0.7 else Accuracy.MEDIUM,
            city=city,
            country=details.get("country") or "Unknown",
            formatted_address=match.get("display_name", ""),
            provider=self.name,
        )
