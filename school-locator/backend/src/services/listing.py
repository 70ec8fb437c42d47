from __future__ import annotations

from typing import Any, Iterable, List

from loguru import logger

from models import RankedSchool, School
from services.errors import Outcome, PersistenceError, SchoolServiceError
from services.store import SchoolStore
from services.validation import validate_location_query
from utils import haversine_km


def rank_by_distance(schools: Iterable[School], latitude: float, longitude: float) -> List[RankedSchool]:
    """Attach the distance from (latitude, longitude) to each school, nearest first.

    ``sorted`` is stable, so schools at the same distance keep the order the
    store returned them in.
    """
    ranked = [
        RankedSchool(school=s, distance=haversine_km(latitude, longitude, s.latitude, s.longitude))
        for s in schools
    ]
    return sorted(ranked, key=lambda r: r.distance)


async def list_schools_by_proximity(
    store: SchoolStore,
    latitude: Any,
    longitude: Any,
    *,
    enforce_range: bool = True,
) -> Outcome[List[RankedSchool]]:
    try:
        lat, lon = validate_location_query(latitude, longitude, enforce_range=enforce_range)
    except SchoolServiceError as exc:
        logger.warning("rejected listing query: {}", exc.payload())
        return Outcome(error=exc)

    # Full scan; there is no spatial index behind the store.
    result = await store.find_all()
    if not result.ok:
        logger.error("scan of {} store failed: {}", store.backend, result.error)
        return Outcome(error=PersistenceError("Error retrieving schools", result.error))

    ranked = rank_by_distance(result.value or [], lat, lon)
    logger.info("listed {} schools near lat={} lon={}", len(ranked), lat, lon)
    return Outcome(value=ranked)
