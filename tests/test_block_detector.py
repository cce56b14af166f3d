import asyncio
import pytest
import scripts.BlockDetector as BlockDetector
from adapters.errors import NetworkError
from adapters.schemas import Address, GeoPoint, StreetSegment

LAT, LON = 33.5, -117.25


def _segment(name, dlat, dlon):
    return StreetSegment(name=name, center=GeoPoint(lat=LAT + dlat, lon=LON + dlon))


def _addr(number, street, dlat, dlon):
    return Address(number=str(number), street=street, full=f"{number} {street}", lat=LAT + dlat, lon=LON + dlon)


BLOCK_STREETS = [
    _segment("North Ave", 0.001, 0.0),
    _segment("East St", 0.0, 0.001),
    _segment("South Ave", -0.001, 0.0),
    _segment("West St", 0.0, -0.001),
]


class DummyClient:
    def __init__(self, segments=None, buildings=None, bounds=None, street_exc=None, building_exc=None, bounds_exc=None):
        self.segments = segments if segments is not None else list(BLOCK_STREETS)
        self.buildings = buildings or []
        self.bounds = bounds or {}
        self.street_exc = street_exc
        self.building_exc = building_exc
        self.bounds_exc = bounds_exc or {}
        self.bounds_calls = []

    def street_segments(self, lat, lon, radius_m):
        if self.street_exc:
            raise self.street_exc
        return self.segments

    def building_addresses(self, lat, lon, radius_m):
        if self.building_exc:
            raise self.building_exc
        return self.buildings

    def addresses_in_bounds(self, south_west, north_east):
        center_lat = round((south_west.lat + north_east.lat) / 2, 6)
        center_lon = round((south_west.lon + north_east.lon) / 2, 6)
        self.bounds_calls.append((center_lat, center_lon))
        key = (center_lat, center_lon)
        if key in self.bounds_exc:
            raise self.bounds_exc[key]
        return self.bounds.get(key, [])


def _key(segment):
    return (round(segment.center.lat, 6), round(segment.center.lon, 6))


def _detect(client):
    detector = BlockDetector.BlockDetector(client)
    result = asyncio.run(detector.detect_block(LAT, LON))
    return detector, result


def test_classify_side():
    center = GeoPoint(lat=LAT, lon=LON)
    assert BlockDetector.classify_side(BLOCK_STREETS[0], center) == "north"
    assert BlockDetector.classify_side(BLOCK_STREETS[1], center) == "east"
    assert BlockDetector.classify_side(BLOCK_STREETS[2], center) == "south"
    assert BlockDetector.classify_side(BLOCK_STREETS[3], center) == "west"
    assert BlockDetector.classify_side(_segment("Here", 0, 0), center) is None


def test_build_topology_first_match_wins_and_flags_ambiguity():
    extra_north = _segment("Other North Ave", 0.002, 0.0001)
    same_name_piece = _segment("North Ave", 0.0011, 0.0)
    topo = BlockDetector.build_topology(BLOCK_STREETS + [extra_north, same_name_piece], LAT, LON)

    assert topo.streets["north"].name == "North Ave"
    assert [s.name for s in topo.ambiguous["north"]] == ["Other North Ave"]
    assert topo.is_ambiguous


def test_generate_block_id_and_estimate_time():
    assert BlockDetector.generate_block_id(GeoPoint(lat=LAT, lon=LON)) == "block-33500--117250"
    assert BlockDetector.estimate_time(0) == "0 minutes"
    assert BlockDetector.estimate_time(10) == "20 minutes"
    assert BlockDetector.estimate_time(30) == "1 hours"
    assert BlockDetector.estimate_time(31) == "1h 2m"


def test_detect_from_buildings_orders_clockwise():
    buildings = [
        _addr(1, "South Ave", -0.0008, 0.0),
        _addr(2, "North Ave", 0.0008, 0.0),
        _addr(3, "West St", 0.0, -0.0008),
        _addr(4, "East St", 0.0, 0.0008),
    ]
    detector, result = _detect(DummyClient(buildings=buildings))

    assert result.source == "buildings"
    assert [a.number for a in result.addresses] == ["3", "2", "4", "1"]
    assert [a.display_position for a in result.addresses] == [1, 2, 3, 4]
    assert result.total_addresses == 4
    assert result.estimated_time == "8 minutes"
    assert result.block_id == "block-33500--117250"
    assert result.perimeter_streets["east"].name == "East St"
    assert detector.state == BlockDetector.DetectorState.ORDERED


def test_building_failure_falls_back_to_street_ranges():
    north, east, south, west = BLOCK_STREETS
    corner = _addr(10, "North Ave", 0.0009, 0.0009)
    bounds = {
        _key(north): [corner, _addr(12, "North Ave", 0.0009, 0.0002)],
        _key(east): [corner, _addr(20, "East St", 0.0002, 0.0009)],
        _key(south): [_addr(30, "South Ave", -0.0009, 0.0)],
    }
    client = DummyClient(building_exc=NetworkError("overpass down"), bounds=bounds)

    detector, result = _detect(client)

    assert result.source == "street_ranges"
    assert len(client.bounds_calls) == 4
    numbers = [a.number for a in result.addresses]
    assert sorted(numbers) == ["10", "12", "20", "30"]
    assert numbers.count("10") == 1
    assert detector.state == BlockDetector.DetectorState.ORDERED


def test_empty_buildings_fall_back_and_skip_failing_street():
    north, east, _, _ = BLOCK_STREETS
    bounds = {_key(east): [_addr(20, "East St", 0.0, 0.0009)]}
    client = DummyClient(bounds=bounds, bounds_exc={_key(north): NetworkError("timeout")})

    _, result = _detect(client)

    assert result.source == "street_ranges"
    assert [a.number for a in result.addresses] == ["20"]


def test_no_addresses_is_empty_success():
    _, result = _detect(DummyClient())
    assert result.addresses == []
    assert result.total_addresses == 0
    assert result.source == "none"
    assert not result.found_route
    assert result.estimated_time == "0 minutes"


def test_addresses_without_coordinates_are_dropped():
    buildings = [Address(number="5", street="North Ave", full="5 North Ave"), _addr(6, "North Ave", 0.0008, 0.0)]
    _, result = _detect(DummyClient(buildings=buildings))
    assert [a.number for a in result.addresses] == ["6"]


def test_street_query_failure_fails_detection():
    client = DummyClient(street_exc=NetworkError("proxy unreachable"))
    detector = BlockDetector.BlockDetector(client)
    with pytest.raises(NetworkError):
        asyncio.run(detector.detect_block(LAT, LON))
    assert detector.state == BlockDetector.DetectorState.FAILED


def test_ambiguous_sides_surface_on_result():
    segments = BLOCK_STREETS + [_segment("Second West St", 0.0, -0.002)]
    _, result = _detect(DummyClient(segments=segments))
    assert result.ambiguous_sides == ["west"]
    assert result.perimeter_streets["west"].name == "West St"
