# adapters/address.py
from __future__ import annotations
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from adapters.errors import ParseError, ValidationError
from adapters.schemas import Address
from config.logger import logger
from config.settings import DEFAULT_STATE, MAX_BATCH_SIZE, RANGE_SIDES, RANGE_STEP

# "1909 W Martha Ln, Santa Ana, CA 92706"
_FULL_FORM = re.compile(r"^(\d+)\s+(.+?),\s*(.+?),\s*([A-Z]{2})\s*(\d{5})")
# "1909 W Martha Ln 92706"
_SHORT_FORM = re.compile(r"^(\d+)\s+(.+?)\s+(\d{5})")
_ZIP = re.compile(r"^\d{5}$")


class AddressRange(BaseModel):
    """Ordered addresses produced from a start/end pair."""
    addresses: List[Address] = Field(default_factory=list)
    was_swapped: bool = False

    def __iter__(self) -> Iterator[Address]:  # type: ignore[override]
        return iter(self.addresses)

    def __len__(self) -> int:
        return len(self.addresses)

    def __getitem__(self, index: int) -> Address:
        return self.addresses[index]

    @property
    def numbers(self) -> List[str]:
        return [a.number for a in self.addresses]


def parse_address(address: Any) -> Address:
    """
    Split an address string into number/street/city/state/zip.

    Accepts the full form ("1909 W Martha Ln, Santa Ana, CA 92706") or the
    short form ("1909 W Martha Ln 92706"), where state falls back to DEFAULT_STATE.
    """
    if address is None or not isinstance(address, str):
        raise ParseError(f"Cannot parse address: {address!r}", {"input": repr(address)})
    text = address.strip()
    if not text:
        raise ParseError("Cannot parse address: empty string", {"input": address})

    match = _FULL_FORM.match(text)
    if match:
        return Address(
            number=match.group(1),
            street=match.group(2).strip(),
            city=match.group(3).strip(),
            state=match.group(4),
            zip=match.group(5),
            full=text,
        )

    match = _SHORT_FORM.match(text)
    if match:
        return Address(
            number=match.group(1),
            street=match.group(2).strip(),
            city=None,
            state=DEFAULT_STATE,
            zip=match.group(3),
            full=text,
        )

    raise ParseError(f"Cannot parse address: {text}", {"input": text})


def format_full_address(number: Union[int, str], street: str, city: Optional[str], state: Optional[str], zip_code: Optional[str]) -> str:
    # Kept in a shape parse_address accepts again
    if city:
        return f"{number} {street}, {city}, {state or DEFAULT_STATE} {zip_code}"
    return f"{number} {street} {zip_code}"


def normalize_range(start: Address, end: Address) -> Tuple[Address, Address, bool]:
    """Return (low, high, was_swapped) so the range always walks upward."""
    if int(end.number) < int(start.number):
        logger.info("End address %s < start address %s; swapping", end.number, start.number)
        return end, start, True
    return start, end, False


def _validate_side(side: Optional[str]) -> str:
    if side is None:
        return "both"
    if side not in RANGE_SIDES:
        raise ValidationError("side", f"must be one of {', '.join(RANGE_SIDES)}", {"side": side})
    return side


def generate_range(
    start_address: str,
    end_address: str,
    *,
    side: Optional[str] = None,
    skip: Optional[Iterable[Union[int, str]]] = None,
    max_count: int = MAX_BATCH_SIZE,
) -> AddressRange:
    """
    Generate every address between two endpoints on the same street.

    Steps by 2 from the lower number so the walk stays on one side of the street,
    then filters by `side` parity and drops any number listed in `skip`.
    Raises ValidationError when street or zip differ, `side` is unknown, or the
    result would exceed `max_count`.
    """
    start = parse_address(start_address)
    end = parse_address(end_address)

    if start.street.casefold() != end.street.casefold():
        raise ValidationError("street", f"range endpoints are on different streets ({start.street!r} vs {end.street!r})")
    if start.zip != end.zip:
        raise ValidationError("zip", f"range endpoints have different zip codes ({start.zip} vs {end.zip})")

    wanted = _validate_side(side)
    low, high, was_swapped = normalize_range(start, end)
    skipped = {str(n).strip() for n in (skip or [])}

    city = low.city or high.city
    addresses: List[Address] = []
    for num in range(int(low.number), int(high.number) + 1, RANGE_STEP):
        if wanted == "odd" and num % 2 == 0:
            continue
        if wanted == "even" and num % 2 != 0:
            continue
        number = str(num)
        if number in skipped:
            continue
        if len(addresses) >= max_count:
            raise ValidationError("range", f"range exceeds maximum of {max_count} addresses", {"max": max_count})
        addresses.append(
            Address(
                number=number,
                street=low.street,
                city=city,
                state=low.state,
                zip=low.zip,
                full=format_full_address(number, low.street, city, low.state, low.zip),
            )
        )

    return AddressRange(addresses=addresses, was_swapped=was_swapped)


def validate_route_address(address: Union[Address, Dict[str, Any]]) -> Tuple[bool, List[str]]:
    """Check an address carries what a route item needs. Returns (valid, errors)."""
    record = address.model_dump() if isinstance(address, Address) else dict(address or {})
    errors: List[str] = []

    if not record.get("number"):
        errors.append("Missing street number")
    if not record.get("street"):
        errors.append("Missing street name")
    zip_code = record.get("zip")
    if not zip_code:
        errors.append("Missing ZIP code")
    elif not _ZIP.match(str(zip_code)):
        errors.append("Invalid ZIP code format (must be 5 digits)")
    if not record.get("full"):
        errors.append("Missing full address string")

    return (not errors, errors)


__all__ = [
    "AddressRange",
    "parse_address",
    "format_full_address",
    "normalize_range",
    "generate_range",
    "validate_route_address",
]
