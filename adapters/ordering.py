from __future__ import annotations
import math
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Mapping, Union

from adapters.schemas import Address, GeoPoint
from config.settings import CLOCKWISE_TIE_EPSILON, EARTH_RADIUS_M

UNKNOWN_STREET = "Unknown"

Coord = Union[Address, GeoPoint, Mapping[str, Any]]


def _lat_lon(point: Coord) -> tuple[float, float]:
    if isinstance(point, Mapping):
        lat, lon = point.get("lat"), point.get("lon")
    else:
        lat, lon = point.lat, point.lon
    if lat is None or lon is None:
        raise ValueError(f"missing coordinates: {point!r}")
    return float(lat), float(lon)


def get_distance(a: Coord, b: Coord) -> float:
    """Haversine great-circle distance in meters."""
    lat1, lon1 = _lat_lon(a)
    lat2, lon2 = _lat_lon(b)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def order_clockwise(addresses: Iterable[Address], center: Coord, *, epsilon: float = CLOCKWISE_TIE_EPSILON) -> List[Address]:
    """
    Sort addresses into a walkable clockwise loop around `center`.

    Angle is atan2(dlat, dlon), so east is 0 and north is pi/2; descending angle
    walks clockwise. Angles closer than `epsilon` are treated as equal and the
    nearer address goes first. position / display_position are reassigned
    (0- and 1-based) after sorting.
    """
    c_lat, c_lon = _lat_lon(center)
    origin = {"lat": c_lat, "lon": c_lon}

    angled = []
    for addr in addresses:
        lat, lon = _lat_lon(addr)
        angled.append(addr.model_copy(update={"angle": math.atan2(lat - c_lat, lon - c_lon)}))

    def _compare(a: Address, b: Address) -> int:
        if abs(a.angle - b.angle) < epsilon:
            da, db = get_distance(origin, a), get_distance(origin, b)
            return (da > db) - (da < db)
        return -1 if a.angle > b.angle else 1

    ordered = sorted(angled, key=cmp_to_key(_compare))
    return [
        addr.model_copy(update={"position": idx, "display_position": idx + 1})
        for idx, addr in enumerate(ordered)
    ]


def deduplicate_corners(addresses: Iterable[Address]) -> List[Address]:
    seen = set()
    unique: List[Address] = []
    for addr in addresses:
        if addr.key in seen:
            continue
        seen.add(addr.key)
        unique.append(addr)
    return unique


def group_by_street(addresses: Iterable[Address]) -> Dict[str, List[Address]]:
    """Group route addresses by street name, keeping route order inside each group."""
    groups: Dict[str, List[Address]] = {}
    for addr in addresses:
        groups.setdefault(addr.street or UNKNOWN_STREET, []).append(addr)
    return groups


__all__ = ["get_distance", "order_clockwise", "deduplicate_corners", "group_by_street", "UNKNOWN_STREET"]
