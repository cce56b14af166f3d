import pytest
import requests
from api.topology_client import TopologyClient
from adapters.errors import NetworkError
from adapters.schemas import GeoPoint


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text="", reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.reason = reason

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class DummySession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, timeout=None, **kwargs):
        self.calls.append({"url": url, "timeout": timeout, **kwargs})
        if self.exc is not None:
            raise self.exc
        return self.response


def _client(response=None, exc=None):
    session = DummySession(response, exc)
    return TopologyClient("http://proxy.test/", timeout=5, session=session), session


def test_street_segments_parses_elements():
    payload = {"elements": [
        {"id": 1, "tags": {"name": "W Martha Ln", "highway": "residential"}, "center": {"lat": 33.71, "lon": -117.9}},
        {"id": 2, "tags": {"highway": "service"}, "center": {"lat": 33.71, "lon": -117.9}},
        {"id": 3, "tags": {"name": "S Bristol St"}, "lat": 33.72, "lon": -117.88},
        {"id": 4, "tags": {"name": "No Center Rd"}},
    ]}
    client, session = _client(DummyResponse(payload=payload))

    segments = client.street_segments(33.71, -117.9, 100)

    assert [s.name for s in segments] == ["W Martha Ln", "S Bristol St"]
    assert segments[1].center == GeoPoint(lat=33.72, lon=-117.88)
    call = session.calls[0]
    assert call["url"] == "http://proxy.test/api/overpass"
    assert call["timeout"] == 5
    assert b"around:100,33.71,-117.9" in call["data"]


def test_non_2xx_is_network_error():
    client, _ = _client(DummyResponse(status_code=502, payload={}, reason="Bad Gateway"))
    with pytest.raises(NetworkError) as exc:
        client.overpass("[out:json];")
    assert exc.value.status_code == 502


def test_malformed_json_is_network_error():
    client, _ = _client(DummyResponse(payload=None))
    with pytest.raises(NetworkError):
        client.overpass("[out:json];")


def test_missing_elements_is_network_error():
    client, _ = _client(DummyResponse(payload={"remark": "runtime error"}))
    with pytest.raises(NetworkError):
        client.overpass("[out:json];")


def test_transport_error_is_wrapped():
    client, _ = _client(exc=requests.ConnectionError("refused"))
    with pytest.raises(NetworkError) as exc:
        client.overpass("[out:json];")
    assert isinstance(exc.value.__cause__, requests.ConnectionError)


def test_building_addresses_need_number_and_street():
    payload = {"elements": [
        {"tags": {"addr:street": "W Martha Ln", "addr:housenumber": "1909", "addr:postcode": "92706"},
         "center": {"lat": 33.71, "lon": -117.9}},
        {"tags": {"addr:street": "W Martha Ln"}, "center": {"lat": 33.71, "lon": -117.9}},
    ]}
    client, _ = _client(DummyResponse(payload=payload))

    found = client.building_addresses(33.71, -117.9)

    assert len(found) == 1
    assert found[0].full == "1909 W Martha Ln"
    assert found[0].zip == "92706"
    assert found[0].has_coordinates


def test_addresses_in_bounds():
    payload = {"success": True, "data": [
        {"number": 1911, "street": "W Martha Ln", "lat": 33.71, "lon": -117.9, "full": "1911 W Martha Ln"},
        {"street": "broken"},
    ]}
    client, session = _client(DummyResponse(payload=payload))

    found = client.addresses_in_bounds(GeoPoint(lat=33.70, lon=-117.91), GeoPoint(lat=33.72, lon=-117.89))

    assert [a.number for a in found] == ["1911"]
    assert session.calls[0]["url"] == "http://proxy.test/api/geocode/bounds"
    assert session.calls[0]["json"] == {
        "southWest": {"lat": 33.70, "lon": -117.91},
        "northEast": {"lat": 33.72, "lon": -117.89},
    }


def test_addresses_in_bounds_failure_flag():
    client, _ = _client(DummyResponse(payload={"success": False, "error": "quota"}))
    with pytest.raises(NetworkError):
        client.addresses_in_bounds(GeoPoint(lat=0, lon=0), GeoPoint(lat=1, lon=1))
