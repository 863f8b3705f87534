"""Address resolution with caching, provider fallback, rate limiting and retries."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

import httpx

from ...config import settings
from ...models.domain import Accuracy, GeocodeCacheEntry, GeocodeResult
from ..geospatial import point_in_bbox
from .cache import GeocodeCache
from .normalizer import normalize_address
from .providers import GeocodingProvider, MapboxGeocoder, NominatimGeocoder, ProviderMatch

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Enforce a minimum interval between outbound requests across all callers."""

    def __init__(
        self,
        min_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval if min_interval is not None else settings.geocode_request_delay_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request: float | None = None
        self.request_count = 0

    async def acquire(self) -> None:
        async with self._lock:
            if self._last_request is not None:
                wait = self.min_interval - (self._clock() - self._last_request)
                if wait > 0:
                    await self._sleep(wait)
            self._last_request = self._clock()
            self.request_count += 1


def build_default_providers() -> list[GeocodingProvider]:
    providers: list[GeocodingProvider] = []
    if settings.mapbox_access_token:
        providers.append(MapboxGeocoder())
    else:
        logger.warning("Mapbox access token not configured, geocoding with Nominatim only")
    providers.append(NominatimGeocoder())
    return providers


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class GeocodingResolver:
    """Resolve free-text addresses to coordinates.

    Lookups go cache first, then through the provider chain in order. A
    provider's match is accepted only when it falls inside the operating
    region and, for providers that report relevance, meets the configured
    threshold. Failures never raise: the caller receives a result with no
    coordinates and ``accuracy=low``.
    """

    def __init__(
        self,
        providers: Sequence[GeocodingProvider] | None = None,
        cache: GeocodeCache | None = None,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        min_relevance: float | None = None,
        region_bbox: Sequence[float] | None = None,
        region_qualifier: str | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        request_delay_seconds: float | None = None,
        max_batch_addresses: int | None = None,
        timeout: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.providers = list(providers) if providers is not None else build_default_providers()
        self.cache = cache if cache is not None else GeocodeCache()
        self._client = client
        self._sleep = sleep
        self.request_delay_seconds = (
            request_delay_seconds if request_delay_seconds is not None else settings.geocode_request_delay_seconds
        )
        self.rate_limiter = rate_limiter or RateLimiter(self.request_delay_seconds, sleep=sleep)
        self.min_relevance = min_relevance if min_relevance is not None else settings.geocode_min_relevance
        self.region_bbox = tuple(region_bbox or settings.operating_region_bbox)
        self.region_qualifier = region_qualifier if region_qualifier is not None else settings.geocode_region_qualifier
        self.max_retries = max_retries if max_retries is not None else settings.geocode_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.geocode_backoff_seconds
        self.batch_size = batch_size or settings.geocode_batch_size
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else settings.geocode_batch_delay_seconds
        )
        self.max_batch_addresses = max_batch_addresses or settings.geocode_max_batch_addresses
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._pending: dict[str, asyncio.Future] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def resolve(self, address: str) -> GeocodeResult:
        normalized = normalize_address(address or "", self.region_qualifier)
        if not normalized:
            return self._null_result(address or "")

        entry = self.cache.get(normalized)
        if entry is not None:
            return self._from_cache(normalized, entry)
        return await self._resolve_uncached(normalized)

    async def resolve_batch(self, addresses: Sequence[str]) -> list[GeocodeResult]:
        """Resolve up to ``max_batch_addresses`` addresses, preserving input order."""
        if len(addresses) > self.max_batch_addresses:
            raise ValueError(f"Batch size exceeds maximum of {self.max_batch_addresses} addresses")

        results: list[GeocodeResult | None] = [None] * len(addresses)
        uncached: list[tuple[int, str]] = []
        for position, address in enumerate(addresses):
            normalized = normalize_address(address or "", self.region_qualifier)
            if not normalized:
                results[position] = self._null_result(address or "")
                continue
            entry = self.cache.get(normalized)
            if entry is not None:
                results[position] = self._from_cache(normalized, entry)
            else:
                uncached.append((position, normalized))

        if uncached:
            logger.info(
                f"Geocoding {len(uncached)} of {len(addresses)} addresses "
                f"({len(addresses) - len(uncached)} served from cache)"
            )

        for start in range(0, len(uncached), self.batch_size):
            if start:
                await self._sleep(self.batch_delay_seconds)
            chunk = uncached[start : start + self.batch_size]
            resolved = await asyncio.gather(
                *(self._staggered(normalized, offset) for offset, (_, normalized) in enumerate(chunk))
            )
            for (position, _), result in zip(chunk, resolved):
                results[position] = result

        return [result for result in results if result is not None]

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> dict:
        stats = self.cache.stats()
        stats["requests"] = self.rate_limiter.request_count
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _staggered(self, normalized: str, offset: int) -> GeocodeResult:
        if offset:
            await self._sleep(self.request_delay_seconds * offset)
        entry = self.cache.get(normalized, count=False)
        if entry is not None:
            return self._from_cache(normalized, entry)
        return await self._resolve_uncached(normalized)

    async def _resolve_uncached(self, normalized: str) -> GeocodeResult:
        pending = self._pending.get(normalized)
        if pending is None:
            pending = asyncio.ensure_future(self._geocode(normalized))
            self._pending[normalized] = pending

            def _forget(task: asyncio.Future, key: str = normalized) -> None:
                if self._pending.get(key) is task:
                    del self._pending[key]

            pending.add_done_callback(_forget)
        else:
            logger.debug(f"Joining in-flight lookup for '{normalized}'")
        return await asyncio.shield(pending)

    async def _geocode(self, normalized: str) -> GeocodeResult:
        low_relevance: ProviderMatch | None = None
        async with self._http_client() as client:
            for provider in self.providers:
                match = await self._query(client, provider, normalized)
                if match is None:
                    continue
                lat, lon = match.coordinates
                if not point_in_bbox(lat, lon, self.region_bbox):
                    logger.warning(
                        f"{provider.name} result for '{normalized}' at ({lat:.5f}, {lon:.5f}) "
                        "is outside the operating region"
                    )
                    continue
                if provider.enforces_relevance and match.relevance < self.min_relevance:
                    logger.info(
                        f"{provider.name} relevance {match.relevance:.2f} below {self.min_relevance:.2f} "
                        f"for '{normalized}', trying next provider"
                    )
                    if low_relevance is None:
                        low_relevance = match
                    continue
                return await self._store(normalized, match)

        if low_relevance is not None:
            logger.info(f"Keeping low-relevance {low_relevance.provider} match for '{normalized}'")
            return await self._store(normalized, low_relevance)

        logger.warning(f"Geocoding failed for '{normalized}'")
        return self._null_result(normalized)

    async def _query(
        self, client: httpx.AsyncClient, provider: GeocodingProvider, address: str
    ) -> ProviderMatch | None:
        url, params = provider.build_request(address)
        payload = await self._request(client, url, params, provider.name)
        if payload is None:
            return None
        try:
            return provider.parse(payload)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning(f"Unexpected {provider.name} response for '{address}': {exc}")
            return None

    async def _request(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any], provider_name: str
    ) -> Any | None:
        """GET with bounded retries on 429, 5xx and transport errors. Returns parsed JSON or None."""
        headers = {"User-Agent": settings.http_user_agent}
        attempt = 0
        while True:
            await self.rate_limiter.acquire()
            try:
                response = await client.get(url, params=params, headers=headers)
            except httpx.TransportError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"{provider_name} unreachable after {self.max_retries} retries: {exc}")
                    return None
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(
                    f"{provider_name} network error, retrying in {wait_time:.1f}s "
                    f"(attempt {attempt}/{self.max_retries}): {exc}"
                )
                await self._sleep(wait_time)
                continue

            if response.status_code == 429 or response.status_code >= 500:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(
                        f"{provider_name} returned {response.status_code} after {self.max_retries} retries"
                    )
                    return None
                wait_time = _retry_after_seconds(response)
                if wait_time is None:
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(
                    f"{provider_name} returned {response.status_code}, retrying in {wait_time:.1f}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await self._sleep(wait_time)
                continue

            if response.is_error:
                logger.warning(f"{provider_name} request failed with status {response.status_code}")
                return None
            try:
                return response.json()
            except ValueError as exc:
                logger.warning(f"{provider_name} returned invalid JSON: {exc}")
                return None

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0)) as client:
            yield client

    async def _store(self, normalized: str, match: ProviderMatch) -> GeocodeResult:
        await self.cache.put_async(
            normalized,
            match.coordinates,
            accuracy=match.accuracy,
            confidence=match.relevance,
            city=match.city,
            country=match.country,
            formatted_address=match.formatted_address or normalized,
        )
        return GeocodeResult(
            address=normalized,
            coordinates=match.coordinates,
            accuracy=match.accuracy,
            confidence=match.relevance,
            from_cache=False,
            city=match.city,
            country=match.country,
            formatted_address=match.formatted_address or normalized,
            provider=match.provider,
        )

    @staticmethod
    def _from_cache(normalized: str, entry: GeocodeCacheEntry) -> GeocodeResult:
        return GeocodeResult(
            address=normalized,
            coordinates=entry.coordinates,
            accuracy=entry.accuracy,
            confidence=entry.confidence,
            from_cache=True,
            city=entry.city,
            country=entry.country,
            formatted_address=entry.formatted_address,
            provider="cache",
        )

    @staticmethod
    def _null_result(address: str) -> GeocodeResult:
        return GeocodeResult(address=address, coordinates=None, accuracy=Accuracy.LOW, confidence=0.0)
