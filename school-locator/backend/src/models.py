"""Data models for the school locator service."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class SchoolDraft:
    """Validated registration input, before the store assigns an id."""

    name: str
    address: str
    latitude: float
    longitude: float

    def to_document(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class School:
    id: str
    name: str
    address: str
    latitude: float
    longitude: float

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "School":
        return cls(
            id=str(doc["_id"]),
            name=doc["name"],
            address=doc["address"],
            latitude=float(doc["latitude"]),
            longitude=float(doc["longitude"]),
        )


@dataclass(frozen=True)
class RankedSchool:
    school: School
    distance: float  # km, computed per request and never persisted

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self.school)
        out["distance"] = self.distance
        return out
