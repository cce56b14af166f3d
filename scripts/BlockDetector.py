"""
Block perimeter detection: point -> four bounding streets -> ordered perimeter addresses.

Two extraction strategies, tried in order:
  1. building footprints tagged with addr:street / addr:housenumber
  2. bounded address search along each detected street
Whatever comes back is de-duplicated at the corners and ordered clockwise.
"""
from __future__ import annotations
import asyncio
import math
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from adapters.ordering import deduplicate_corners, order_clockwise
from adapters.schemas import Address, BlockResult, BlockTopology, GeoPoint, StreetSegment
from api.topology_client import TopologyClient, _get_client
from config.logger import logger
from config.settings import BLOCK_SEARCH_RADIUS_M, BOUNDS_PADDING_DEG, CARDINAL_SIDES, MINUTES_PER_ADDRESS


class DetectorState(str, Enum):
    IDLE = "idle"
    QUERYING_STREETS = "querying_streets"
    BUILDING_TOPOLOGY = "building_topology"
    EXTRACTING_BUILDINGS = "extracting_buildings"
    EXTRACTING_STREET_RANGES = "extracting_street_ranges"
    ORDERED = "ordered"
    FAILED = "failed"


def classify_side(segment: StreetSegment, center: GeoPoint) -> Optional[str]:
    """Dominant axis decides north/south vs east/west; the sign picks the side."""
    lat_diff = segment.center.lat - center.lat
    lon_diff = segment.center.lon - center.lon
    if abs(lat_diff) > abs(lon_diff):
        if lat_diff > 0:
            return "north"
        if lat_diff < 0:
            return "south"
        return None
    if lon_diff > 0:
        return "east"
    if lon_diff < 0:
        return "west"
    return None


def build_topology(segments: Iterable[StreetSegment], lat: float, lon: float) -> BlockTopology:
    """
    Assign one street per cardinal side, first match wins.

    With several candidates on one side this is lossy; the losers are kept in
    `ambiguous` so callers can tell a clean block from a guessed one.
    """
    center = GeoPoint(lat=lat, lon=lon)
    streets = {side: None for side in CARDINAL_SIDES}
    ambiguous = {}

    for segment in segments:
        side = classify_side(segment, center)
        if side is None:
            continue
        if streets[side] is None:
            streets[side] = segment
        elif segment.name != streets[side].name:
            ambiguous.setdefault(side, []).append(segment)

    topology = BlockTopology(streets=streets, center=center, ambiguous=ambiguous)
    if topology.is_ambiguous:
        logger.warning(
            "Block topology at %.5f,%.5f is ambiguous on %s; kept first match per side",
            lat, lon, ", ".join(sorted(ambiguous)),
        )
    return topology


def generate_block_id(center: GeoPoint) -> str:
    # Same block, same id: coordinates truncated to 3 decimals
    return f"block-{math.floor(center.lat * 1000)}-{math.floor(center.lon * 1000)}"


def estimate_time(address_count: int, minutes_per_address: int = MINUTES_PER_ADDRESS) -> str:
    total = address_count * minutes_per_address
    if total < 60:
        return f"{total} minutes"
    hours, mins = divmod(total, 60)
    return f"{hours}h {mins}m" if mins else f"{hours} hours"


class BlockDetector:
    def __init__(self, client: Optional[TopologyClient] = None, *, radius_m: float = BLOCK_SEARCH_RADIUS_M, padding_deg: float = BOUNDS_PADDING_DEG) -> None:
        self.client = client or _get_client()
        self.radius_m = radius_m
        self.padding_deg = padding_deg
        self.state = DetectorState.IDLE

    def _enter(self, state: DetectorState) -> None:
        logger.info(f"BlockDetector: {self.state.value} -> {state.value}")
        self.state = state

    async def detect_block(self, lat: float, lon: float) -> BlockResult:
        """
        Detect the block around (lat, lon) and return its ordered perimeter.

        Only the initial street query can fail the detection (NetworkError);
        an empty perimeter comes back as a normal result with no addresses.
        """
        self.state = DetectorState.IDLE
        self._enter(DetectorState.QUERYING_STREETS)
        try:
            segments = await asyncio.to_thread(self.client.street_segments, lat, lon, self.radius_m)
        except Exception:
            self._enter(DetectorState.FAILED)
            raise

        self._enter(DetectorState.BUILDING_TOPOLOGY)
        topology = build_topology(segments, lat, lon)

        addresses, source = await self.extract_perimeter_addresses(topology)
        self._enter(DetectorState.ORDERED)

        if not addresses:
            logger.warning(f"No perimeter addresses found around {lat:.5f},{lon:.5f}")

        return BlockResult(
            block_id=generate_block_id(topology.center),
            center=topology.center,
            perimeter_streets=topology.streets,
            addresses=addresses,
            total_addresses=len(addresses),
            estimated_time=estimate_time(len(addresses)),
            source=source,
            ambiguous_sides=sorted(side for side, extra in topology.ambiguous.items() if extra),
        )

    async def extract_perimeter_addresses(self, topology: BlockTopology) -> Tuple[List[Address], str]:
        """Buildings first, street ranges as fallback. Returns (ordered addresses, source)."""
        self._enter(DetectorState.EXTRACTING_BUILDINGS)
        try:
            ordered = self._finish(await self._extract_from_buildings(topology), topology)
            if ordered:
                return ordered, "buildings"
            logger.info("No addressed buildings near block; falling back to street ranges")
        except Exception as exc:
            logger.warning(f"Building extraction failed, falling back to street ranges: {exc}")

        self._enter(DetectorState.EXTRACTING_STREET_RANGES)
        ordered = self._finish(await self._extract_from_street_ranges(topology), topology)
        if ordered:
            return ordered, "street_ranges"
        return [], "none"

    async def _extract_from_buildings(self, topology: BlockTopology) -> List[Address]:
        center = topology.center
        return await asyncio.to_thread(self.client.building_addresses, center.lat, center.lon, self.radius_m)

    async def _extract_from_street_ranges(self, topology: BlockTopology) -> List[Address]:
        merged: List[Address] = []
        for street in topology.perimeter:
            south_west = GeoPoint(lat=street.center.lat - self.padding_deg, lon=street.center.lon - self.padding_deg)
            north_east = GeoPoint(lat=street.center.lat + self.padding_deg, lon=street.center.lon + self.padding_deg)
            try:
                found = await asyncio.to_thread(self.client.addresses_in_bounds, south_west, north_east)
            except Exception as exc:
                logger.warning(f"Street range query failed for {street.name}; skipping: {exc}")
                continue
            merged.extend(found)
        return merged

    def _finish(self, addresses: List[Address], topology: BlockTopology) -> List[Address]:
        located = [a for a in addresses if a.has_coordinates]
        if len(located) < len(addresses):
            logger.warning("Dropped %s perimeter addresses without coordinates", len(addresses) - len(located))
        return order_clockwise(deduplicate_corners(located), topology.center)


__all__ = [
    "BlockDetector",
    "DetectorState",
    "build_topology",
    "classify_side",
    "generate_block_id",
    "estimate_time",
]
