from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, Field, field_validator

from config.settings import (
    CARDINAL_SIDES, CHECKPOINT_VERSION, MAX_CONCURRENT_TABS, RETRY_ATTEMPTS,
    TAB_OPEN_DELAY_S, RETRY_DELAY_S, CAPTURE_DELAY_S)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeoPoint(BaseModel):
    lat: float
    lon: float

    class Config:
        frozen = True


class Address(BaseModel):
    """One work item on a route. Immutable; reordering produces copies."""
    number: str
    street: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    full: str = ""

    # Filled in once the address is placed on a block perimeter
    lat: Optional[float] = None
    lon: Optional[float] = None
    angle: Optional[float] = None
    position: Optional[int] = None
    display_position: Optional[int] = None

    class Config:
        frozen = True
        extra = "allow"

    @field_validator("number", "zip", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def key(self) -> Tuple[str, str]:
        """Dedup key: a corner lot shows up once per street it fronts."""
        return (self.number, self.street)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None


class StreetSegment(BaseModel):
    """A named street way as returned by the topology query."""
    id: Optional[Union[int, str]] = None
    name: str
    highway: Optional[str] = None
    center: GeoPoint


class BlockTopology(BaseModel):
    streets: Dict[str, Optional[StreetSegment]] = Field(
        default_factory=lambda: {side: None for side in CARDINAL_SIDES}
    )
    center: GeoPoint
    # Candidates that lost the first-match-wins race, per side
    ambiguous: Dict[str, List[StreetSegment]] = Field(default_factory=dict)

    @property
    def perimeter(self) -> List[StreetSegment]:
        """Detected streets in north, east, south, west order, gaps skipped."""
        return [self.streets[side] for side in CARDINAL_SIDES if self.streets.get(side) is not None]

    @property
    def is_ambiguous(self) -> bool:
        return any(self.ambiguous.values())


class BlockResult(BaseModel):
    block_id: str
    center: GeoPoint
    perimeter_streets: Dict[str, Optional[StreetSegment]]
    addresses: List[Address] = Field(default_factory=list)
    total_addresses: int = 0
    estimated_time: str
    source: str = "none"  # buildings | street_ranges | none
    ambiguous_sides: List[str] = Field(default_factory=list)

    @property
    def found_route(self) -> bool:
        return self.total_addresses > 0


class ItemResult(BaseModel):
    """What an executor hands back for a single address."""
    success: bool
    address: str
    index: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempts: int = 0
    timestamp: datetime = Field(default_factory=_utcnow)


class BatchConfig(BaseModel):
    max_concurrent_tabs: int = Field(MAX_CONCURRENT_TABS, ge=1, le=MAX_CONCURRENT_TABS)
    retry_attempts: int = Field(RETRY_ATTEMPTS, ge=1)
    tab_open_delay: float = Field(TAB_OPEN_DELAY_S, ge=0)
    retry_delay: float = Field(RETRY_DELAY_S, ge=0)
    capture_delay: float = Field(CAPTURE_DELAY_S, ge=0)

    class Config:
        extra = "allow"  # executor-specific knobs ride along


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int
    cancelled: int = 0
    duration: float  # seconds


class BatchOutcome(BaseModel):
    batch_id: str
    status: str
    summary: BatchSummary
    results: List[ItemResult] = Field(default_factory=list)
    error: Optional[str] = None


class ProgressCheckpoint(BaseModel):
    """The single persisted checkpoint slot. Serialized with camelCase keys."""
    block_id: str = Field(alias="blockId")
    completed: List[Dict[str, Any]] = Field(default_factory=list)
    remaining: List[Dict[str, Any]] = Field(default_factory=list)
    timestamp: float  # epoch seconds
    version: str = CHECKPOINT_VERSION

    class Config:
        populate_by_name = True


class ProgressSummary(BaseModel):
    completed: int
    remaining: int
    total: int
    percent_complete: int
    time_elapsed: str
