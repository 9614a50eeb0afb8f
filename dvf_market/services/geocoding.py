import asyncio
import logging
import math
from typing import Optional

from ..core.cache import MISSING, TTLStore
from ..core.metrics import GEOCODE_LOOKUPS
from ..core.utils import normalize_key
from ..data.base import Coordinates, GeocodeClient

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000

def distance_meters(a: Coordinates, b: Coordinates) -> float:
    """Great-circle (haversine) distance in meters."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (math.sin(d_lat / 2) ** 2
         + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

class GeocodingResolver:
    """
    address (+ postal code, city) → Coordinates | None.

    Answers, negative ones included, are kept in the injected TTLStore, so a
    failed address is not retried before the entry expires. Concurrent calls
    for the same address share one lookup, and a lookup keeps running (and
    fills the cache) even if the caller that started it stops waiting.
    """
    def __init__(self, client: GeocodeClient, cache: TTLStore, max_concurrency: int = 10):
        self.client = client
        self.cache = cache
        self._inflight: dict[str, asyncio.Future] = {}
        self._slots = asyncio.Semaphore(max(1, max_concurrency))

    @staticmethod
    def enrich(address: str, postal_code: Optional[str] = None, city: Optional[str] = None) -> str:
        address = address.strip()
        if postal_code and city:
            return f"{address}, {postal_code} {city}"
        if postal_code:
            return f"{address}, {postal_code}"
        return address

    async def resolve(self, address: Optional[str], postal_code: Optional[str] = None,
                      city: Optional[str] = None) -> Optional[Coordinates]:
        if not address or not address.strip():
            return None
        query = self.enrich(address, postal_code, city)
        key = normalize_key(query)

        cached = self.cache.get(key)
        if cached is not MISSING:
            GEOCODE_LOOKUPS.labels(result="hit").inc()
            return cached

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._lookup(query, key))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _f, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(pending)

    async def _lookup(self, query: str, key: str) -> Optional[Coordinates]:
        coords: Optional[Coordinates] = None
        async with self._slots:
            try:
                features = await self.client.search(query, limit=1)
            except Exception as exc:
                # Any client failure degrades to "not geocoded"
                logger.warning("geocoding failed for %r: %s", query, exc)
                GEOCODE_LOOKUPS.labels(result="error").inc()
            else:
                if features:
                    coords = features[0].coordinates
                    GEOCODE_LOOKUPS.labels(result="found").inc()
                else:
                    logger.warning("no geocoding result for %r", query)
                    GEOCODE_LOOKUPS.labels(result="empty").inc()
        self.cache.set(key, coords)
        return coords

    def clear(self) -> None:
        self.cache.clear()
