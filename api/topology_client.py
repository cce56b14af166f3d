from __future__ import annotations
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from typing import Any, Dict, List, Optional

from adapters.errors import NetworkError
from adapters.schemas import Address, GeoPoint, StreetSegment
from config.logger import logger
from config.settings import (
    ROUTE_PROXY_BASE_URL, OVERPASS_PATH, BOUNDS_SEARCH_PATH, QUERY_TIMEOUT_S, BLOCK_SEARCH_RADIUS_M)

STREETS_QUERY = """
[out:json][timeout:25];
(
  way["highway"]["name"](around:{radius},{lat},{lon});
);
out tags center;
""".strip()

BUILDINGS_QUERY = """
[out:json][timeout:25];
(
  way["building"]["addr:street"](around:{radius},{lat},{lon});
);
out tags center;
""".strip()


def _build_session() -> requests.Session:
    sess = requests.Session()
    # Only idempotent GETs are retried by the transport; topology POSTs fail fast.
    retry = Retry(
        total=3,
        backoff_factor=0.3,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET"])
    )
    sess.headers.update({"Accept": "application/json"})
    sess.mount("http://", HTTPAdapter(max_retries=retry))
    sess.mount("https://", HTTPAdapter(max_retries=retry))
    return sess


def _element_center(element: Dict[str, Any]) -> Optional[GeoPoint]:
    """Ways carry a 'center' when queried with `out center`; nodes carry lat/lon directly."""
    center = element.get("center") or {}
    lat = center.get("lat", element.get("lat"))
    lon = center.get("lon", element.get("lon"))
    if lat is None or lon is None:
        return None
    return GeoPoint(lat=float(lat), lon=float(lon))


def _to_street_segment(element: Dict[str, Any]) -> Optional[StreetSegment]:
    tags = element.get("tags") or {}
    name = tags.get("name")
    center = _element_center(element)
    if not name or center is None:
        return None
    return StreetSegment(id=element.get("id"), name=name, highway=tags.get("highway"), center=center)


def _to_building_address(element: Dict[str, Any]) -> Optional[Address]:
    tags = element.get("tags") or {}
    street = tags.get("addr:street")
    number = tags.get("addr:housenumber")
    if not street or not number:
        return None
    center = _element_center(element)
    return Address(
        number=str(number),
        street=street,
        city=tags.get("addr:city"),
        state=tags.get("addr:state"),
        zip=tags.get("addr:postcode"),
        full=f"{number} {street}",
        lat=center.lat if center else None,
        lon=center.lon if center else None,
    )


class TopologyClient:
    """Talks to the route proxy: Overpass passthrough plus bounded address search."""

    def __init__(self, base_url: str = ROUTE_PROXY_BASE_URL, *, timeout: float = QUERY_TIMEOUT_S, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or _build_session()

    def _post(self, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.post(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {url} failed: {exc}", context={"url": url}) from exc
        if not 200 <= r.status_code < 300:
            raise NetworkError(
                f"Query to {url} failed: {r.status_code} {r.reason}",
                status_code=r.status_code,
                context={"url": url, "body": r.text[:500]},
            )
        try:
            return r.json()
        except ValueError as exc:
            raise NetworkError(f"Malformed JSON from {url}", status_code=r.status_code, context={"url": url}) from exc

    # Raw Overpass passthrough
    def overpass(self, query: str) -> List[Dict[str, Any]]:
        data = self._post(OVERPASS_PATH, data=query.encode("utf-8"), headers={"Content-Type": "text/plain"})
        elements = data.get("elements") if isinstance(data, dict) else None
        if not isinstance(elements, list):
            raise NetworkError("Overpass response has no 'elements' list", context={"payload": str(data)[:500]})
        return elements

    def street_segments(self, lat: float, lon: float, radius_m: float = BLOCK_SEARCH_RADIUS_M) -> List[StreetSegment]:
        elements = self.overpass(STREETS_QUERY.format(radius=radius_m, lat=lat, lon=lon))
        segments = [seg for seg in (_to_street_segment(el) for el in elements) if seg is not None]
        logger.info("Topology query returned %s named street segments (%s elements)", len(segments), len(elements))
        return segments

    def building_addresses(self, lat: float, lon: float, radius_m: float = BLOCK_SEARCH_RADIUS_M) -> List[Address]:
        elements = self.overpass(BUILDINGS_QUERY.format(radius=radius_m, lat=lat, lon=lon))
        return [addr for addr in (_to_building_address(el) for el in elements) if addr is not None]

    def addresses_in_bounds(self, south_west: GeoPoint, north_east: GeoPoint) -> List[Address]:
        """Bounded address-range search: {southWest, northEast} -> {success, data: [...]}."""
        payload = {
            "southWest": {"lat": south_west.lat, "lon": south_west.lon},
            "northEast": {"lat": north_east.lat, "lon": north_east.lon},
        }
        data = self._post(BOUNDS_SEARCH_PATH, json=payload)
        if not isinstance(data, dict) or not data.get("success", False):
            raise NetworkError("Bounds search reported failure", context={"payload": str(data)[:500]})

        addresses: List[Address] = []
        for record in data.get("data") or []:
            try:
                addresses.append(Address(**record))
            except (TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed bounds record {record!r}: {exc}")
        return addresses


_client: Optional[TopologyClient] = None

def _get_client() -> TopologyClient:
    global _client
    if _client is None:
        _client = TopologyClient()
    return _client
