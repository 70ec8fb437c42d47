"""Request-terminal failures of the school service.

Every error knows the HTTP status it maps to and the JSON body reported to the
caller, so the web layer never has to inspect error internals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

INVALID_NUMBER_MESSAGE = "Latitude and longitude must be valid numbers"
OUT_OF_RANGE_MESSAGE = "Latitude must be between -90 and 90 and longitude between -180 and 180"
MISSING_FIELDS_MESSAGE = "All fields are required"
MISSING_QUERY_MESSAGE = "Latitude and longitude are required as query parameters."


def _echo(value: Any) -> Any:
    # JSON has no NaN or Infinity literals
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


class SchoolServiceError(Exception):
    status_code: int = 400
    message: str = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def payload(self) -> Dict[str, Any]:
        return {"message": self.message}


class MissingFieldsError(SchoolServiceError):
    message = MISSING_FIELDS_MESSAGE

    def __init__(self, missing_fields: Dict[str, bool]) -> None:
        super().__init__()
        self.missing_fields = dict(missing_fields)

    def payload(self) -> Dict[str, Any]:
        return {"message": self.message, "missingFields": self.missing_fields}


class MissingQueryParamsError(SchoolServiceError):
    message = MISSING_QUERY_MESSAGE


class InvalidNumberError(SchoolServiceError):
    message = INVALID_NUMBER_MESSAGE

    def __init__(self, latitude: Any, longitude: Any) -> None:
        super().__init__()
        self.latitude = latitude
        self.longitude = longitude

    def payload(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "latitude": _echo(self.latitude),
            "longitude": _echo(self.longitude),
        }


class CoordinateRangeError(InvalidNumberError):
    message = OUT_OF_RANGE_MESSAGE


class PersistenceError(SchoolServiceError):
    status_code = 500
    message = "Error accessing the school store"

    def __init__(self, message: str, cause: BaseException) -> None:
        super().__init__(message)
        self.cause = cause

    def payload(self) -> Dict[str, Any]:
        return {"message": self.message, "error": str(self.cause) or type(self.cause).__name__}


T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Result of a handler call: either a value or the error to report."""

    value: Optional[T] = None
    error: Optional[SchoolServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
