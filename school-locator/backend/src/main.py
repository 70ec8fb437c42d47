from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from config import Configuration
from services.errors import PersistenceError, SchoolServiceError
from services.listing import list_schools_by_proximity
from services.registration import register_school
from services.store import SchoolStore, create_store


# Raw JSON types are kept so the validator can tell "abc" and true from numbers.
RawCoordinate = Optional[Union[StrictFloat, StrictInt, StrictStr, StrictBool]]

BODY_NOT_OBJECT_MESSAGE = "Request body must be a JSON object"
FIELD_TYPE_MESSAGE = "name and address must be strings; latitude and longitude must be numbers or numeric strings"


class SchoolSubmission(BaseModel):
    name: Optional[str] = Field(None, description="School name")
    address: Optional[str] = Field(None, description="Street address")
    latitude: RawCoordinate = Field(None, description="Latitude in degrees")
    longitude: RawCoordinate = Field(None, description="Longitude in degrees")


class AddSchoolResponse(BaseModel):
    message: str
    id: str


class SchoolPayload(BaseModel):
    id: str
    name: str
    address: str
    latitude: float
    longitude: float
    distance: float = Field(..., description="Great-circle distance from the query point in km")


def configure_logging(cfg: Configuration) -> None:
    logger.remove()
    logger.add(sys.stderr, level=cfg.log_level.upper())


def get_store(request: Request) -> SchoolStore:
    return request.app.state.store


def get_config(request: Request) -> Configuration:
    return request.app.state.cfg


def _error_response(error: SchoolServiceError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.payload())


router = APIRouter(tags=["Schools"])


@router.post("/addSchool", status_code=201, response_model=AddSchoolResponse)
async def add_school(
    submission: Optional[SchoolSubmission] = None,
    store: SchoolStore = Depends(get_store),
    cfg: Configuration = Depends(get_config),
):
    body = submission.model_dump() if submission is not None else {}
    if cfg.log_request_bodies:
        logger.info("request body: {}", body)

    try:
        outcome = await register_school(store, body, enforce_range=cfg.enforce_coordinate_range)
    except Exception as exc:
        logger.exception("add school failed: {}", exc)
        return _error_response(PersistenceError("Error adding school", exc))

    if not outcome.ok:
        return _error_response(outcome.error)
    return AddSchoolResponse(message="School added successfully", id=outcome.value)


@router.get("/listSchools", response_model=List[SchoolPayload])
async def list_schools(
    latitude: Optional[str] = Query(None, description="Latitude of the caller"),
    longitude: Optional[str] = Query(None, description="Longitude of the caller"),
    store: SchoolStore = Depends(get_store),
    cfg: Configuration = Depends(get_config),
):
    try:
        outcome = await list_schools_by_proximity(
            store, latitude, longitude, enforce_range=cfg.enforce_coordinate_range
        )
    except Exception as exc:
        logger.exception("list schools failed: {}", exc)
        return _error_response(PersistenceError("Error retrieving schools", exc))

    if not outcome.ok:
        return _error_response(outcome.error)
    return [SchoolPayload(**ranked.to_dict()) for ranked in outcome.value or []]


@router.get("/healthz")
async def healthz(store: SchoolStore = Depends(get_store)) -> dict:
    result = await store.ping()
    return {"status": "ok", "store": store.backend, "store_ok": result.ok}


def create_app(cfg: Optional[Configuration] = None, store: Optional[SchoolStore] = None) -> FastAPI:
    cfg = cfg or Configuration.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg)
        logger.info("cfg: {}", cfg.log_summary())
        app.state.store = store or create_store(cfg)
        # A failed connection is logged by the store; requests then report persistence errors.
        await app.state.store.connect()
        try:
            yield
        finally:
            await app.state.store.close()

    app = FastAPI(title="School Locator", lifespan=lifespan)
    app.state.cfg = cfg
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origin_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        logger.warning("malformed request to {}: {}", request.url.path, errors)
        if any(tuple(err.get("loc", ())) == ("body",) for err in errors):
            message = BODY_NOT_OBJECT_MESSAGE
        else:
            message = FIELD_TYPE_MESSAGE
        return JSONResponse(status_code=400, content={"message": message, "errors": jsonable_encoder(errors)})

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = Configuration.from_env()
    uvicorn.run("main:app", host=settings.host, port=settings.port)
