from __future__ import annotations

from typing import Any, Mapping

from loguru import logger

from services.errors import Outcome, PersistenceError, SchoolServiceError
from services.store import SchoolStore
from services.validation import validate_school_submission


async def register_school(
    store: SchoolStore,
    body: Mapping[str, Any],
    *,
    enforce_range: bool = True,
) -> Outcome[str]:
    """Validate a submitted school and persist it; the value is the new id.

    Nothing is written unless validation passes, and a failed insert is
    reported as-is without retrying.
    """
    try:
        draft = validate_school_submission(body, enforce_range=enforce_range)
    except SchoolServiceError as exc:
        logger.warning("rejected school submission: {}", exc.payload())
        return Outcome(error=exc)

    result = await store.insert(draft)
    if not result.ok:
        logger.error("insert into {} store failed: {}", store.backend, result.error)
        return Outcome(error=PersistenceError("Error adding school", result.error))

    logger.info("school added id={} name={!r}", result.value, draft.name)
    return Outcome(value=result.value)
