from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Tuple

from models import SchoolDraft
from services.errors import (
    CoordinateRangeError,
    InvalidNumberError,
    MissingFieldsError,
    MissingQueryParamsError,
)

REQUIRED_FIELDS = ("name", "address", "latitude", "longitude")
LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)


def _is_missing(value: Any) -> bool:
    """Presence check by nullability, not truthiness: 0 is a real coordinate."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def parse_coordinate(value: Any) -> Optional[float]:
    """Return a finite float for numeric input, or None if it is not a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _parse_pair(latitude: Any, longitude: Any, *, enforce_range: bool) -> Tuple[float, float]:
    lat = parse_coordinate(latitude)
    lon = parse_coordinate(longitude)
    if lat is None or lon is None:
        raise InvalidNumberError(latitude, longitude)
    if enforce_range:
        if not (LAT_RANGE[0] <= lat <= LAT_RANGE[1]) or not (LON_RANGE[0] <= lon <= LON_RANGE[1]):
            raise CoordinateRangeError(latitude, longitude)
    return lat, lon


def validate_school_submission(body: Mapping[str, Any], *, enforce_range: bool = True) -> SchoolDraft:
    """Check a registration body and build the record to persist.

    Raises:
        MissingFieldsError: any of the four fields is absent or blank.
        InvalidNumberError: latitude/longitude present but not a finite number.
        CoordinateRangeError: coordinates outside [-90, 90] / [-180, 180].
    """
    missing = {field: _is_missing(body.get(field)) for field in REQUIRED_FIELDS}
    if any(missing.values()):
        raise MissingFieldsError(missing)

    lat, lon = _parse_pair(body["latitude"], body["longitude"], enforce_range=enforce_range)
    return SchoolDraft(
        name=str(body["name"]).strip(),
        address=str(body["address"]).strip(),
        latitude=lat,
        longitude=lon,
    )


def validate_location_query(
    latitude: Any, longitude: Any, *, enforce_range: bool = True
) -> Tuple[float, float]:
    """Check listing query parameters and return them as floats."""
    if _is_missing(latitude) or _is_missing(longitude):
        raise MissingQueryParamsError()
    return _parse_pair(latitude, longitude, enforce_range=enforce_range)
