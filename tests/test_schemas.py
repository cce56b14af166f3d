import pytest
from pydantic import ValidationError as PydanticValidationError
from adapters.schemas import Address, BatchConfig, BlockTopology, GeoPoint, ProgressCheckpoint, StreetSegment


def test_address_is_frozen():
    addr = Address(number="1", street="Main St", full="1 Main St")
    with pytest.raises(PydanticValidationError):
        addr.number = "2"


def test_address_coerces_numeric_fields():
    addr = Address(number=1909, street="W Martha Ln", zip=92706, full="1909 W Martha Ln 92706", source="bounds")
    assert addr.number == "1909"
    assert addr.zip == "92706"
    assert addr.key == ("1909", "W Martha Ln")
    assert not addr.has_coordinates


def test_block_topology_perimeter_order():
    center = GeoPoint(lat=0, lon=0)
    west = StreetSegment(name="West St", center=GeoPoint(lat=0, lon=-1))
    north = StreetSegment(name="North St", center=GeoPoint(lat=1, lon=0))
    topo = BlockTopology(streets={"north": north, "east": None, "south": None, "west": west}, center=center)
    assert [s.name for s in topo.perimeter] == ["North St", "West St"]
    assert not topo.is_ambiguous


def test_checkpoint_alias_round_trip():
    cp = ProgressCheckpoint(block_id="block-1-2", timestamp=10.0)
    dumped = cp.model_dump(by_alias=True)
    assert dumped["blockId"] == "block-1-2"
    assert dumped["version"] == "1.0"
    assert ProgressCheckpoint(**dumped).block_id == "block-1-2"


def test_batch_config_bounds():
    assert BatchConfig().max_concurrent_tabs == 3
    with pytest.raises(PydanticValidationError):
        BatchConfig(max_concurrent_tabs=4)
    with pytest.raises(PydanticValidationError):
        BatchConfig(retry_attempts=0)
