from typing import List, Optional
from .base import GeocodeClient, GeocodeFeature, Coordinates
from ..core.config import settings
from ..core.utils import fnv1a_32, seeded_rand
import httpx

class MockGeocode(GeocodeClient):
    """
    Mock geocoder that turns the address string into a stable lat/lon
    inside Seine-Saint-Denis. Entirely deterministic, no network.
    """
    async def search(self, query: str, limit: int = 1, type: Optional[str] = None) -> List[GeocodeFeature]:
        if not query.strip():
            return []
        seed = fnv1a_32(query.strip().lower())
        lat = 48.85 + seeded_rand(seed, 1)[0] * 0.12     # ~48.85..48.97
        lon = 2.33 + seeded_rand(seed + 1, 1)[0] * 0.22   # ~2.33..2.55
        return [GeocodeFeature(
            label=query.strip(),
            postcode=None,
            city=None,
            street=None,
            coordinates=Coordinates(lat=round(lat, 6), lon=round(lon, 6)),
        )][:limit]

class HttpGeocode(GeocodeClient):
    """
    Client for the French national address API (api-adresse.data.gouv.fr)
    or any service answering the same GeoJSON shape on /search/.
    """
    def __init__(self, base_url: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def search(self, query: str, limit: int = 1, type: Optional[str] = None) -> List[GeocodeFeature]:
        params = {"q": query, "limit": limit}
        if type:
            params["type"] = type
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            r = await client.get(f"{self.base_url}/search/", params=params)
            r.raise_for_status()
            j = r.json()
        if not isinstance(j, dict):
            return []
        features = []
        for f in j.get("features") or []:
            if not isinstance(f, dict):
                continue
            coords = (f.get("geometry") or {}).get("coordinates") or []
            if len(coords) < 2:
                continue
            props = f.get("properties") or {}
            features.append(GeocodeFeature(
                label=props.get("label", ""),
                postcode=props.get("postcode"),
                city=props.get("city"),
                street=props.get("street") or props.get("name"),
                # GeoJSON order is [lon, lat]
                coordinates=Coordinates(lat=float(coords[1]), lon=float(coords[0])),
            ))
        return features

def geocode_client() -> GeocodeClient:
    """
    Factory picks mock or http based on env flags.
    """
    if settings.GEO_PROVIDER == "http" and settings.GEO_BASE_URL:
        return HttpGeocode(settings.GEO_BASE_URL, timeout=settings.GEO_TIMEOUT_SECONDS)
    return MockGeocode()
