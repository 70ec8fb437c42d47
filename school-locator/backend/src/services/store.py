"""Record store backends for school documents.

Operations return a ``StoreResult`` instead of raising on driver failures; the
handlers turn a failed result into a ``PersistenceError`` for the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import CollectionInvalid, PyMongoError

from config import Configuration
from models import School, SchoolDraft
from utils import mask_url_credentials

T = TypeVar("T")

SCHOOL_SCHEMA: Dict[str, Any] = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["name", "address", "latitude", "longitude"],
        "properties": {
            "name": {"bsonType": "string", "minLength": 1},
            "address": {"bsonType": "string", "minLength": 1},
            "latitude": {"bsonType": ["double", "int", "long", "decimal"]},
            "longitude": {"bsonType": ["double", "int", "long", "decimal"]},
        },
    }
}


@dataclass
class StoreResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SchoolStore(Protocol):
    backend: str

    async def connect(self) -> StoreResult[bool]: ...

    async def close(self) -> None: ...

    async def ping(self) -> StoreResult[bool]: ...

    async def insert(self, draft: SchoolDraft) -> StoreResult[str]: ...

    async def find_all(self) -> StoreResult[List[School]]: ...


class StoreNotConnected(RuntimeError):
    pass


class MongoSchoolStore:
    backend = "mongo"

    def __init__(self, cfg: Configuration, *, client: Any = None, collection: Any = None) -> None:
        self.cfg = cfg
        self._client = client
        self._collection = collection

    async def connect(self) -> StoreResult[bool]:
        target = mask_url_credentials(self.cfg.mongo_url)
        try:
            if self._client is None:
                self._client = AsyncIOMotorClient(
                    self.cfg.mongo_url, serverSelectionTimeoutMS=self.cfg.mongo_timeout_ms
                )
            db = self._client[self.cfg.mongo_db]
            self._collection = db[self.cfg.mongo_collection]
            await self._client.admin.command("ping")
            await self._ensure_collection(db)
        except PyMongoError as exc:
            logger.error("error connecting to MongoDB {}: {}", target, exc)
            return StoreResult(error=exc)
        logger.info("connected to MongoDB {} db={} collection={}", target, self.cfg.mongo_db, self.cfg.mongo_collection)
        return StoreResult(value=True)

    async def _ensure_collection(self, db: Any) -> None:
        name = self.cfg.mongo_collection
        if name in await db.list_collection_names():
            return
        try:
            await db.create_collection(name, validator=SCHOOL_SCHEMA)
            logger.info("created collection {} with schema validator", name)
        except CollectionInvalid:
            # created concurrently by another worker
            logger.debug("collection {} already exists", name)

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB connection closed")
        self._client = None
        self._collection = None

    async def ping(self) -> StoreResult[bool]:
        if self._client is None:
            return StoreResult(error=StoreNotConnected("store is not connected"))
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            return StoreResult(error=exc)
        return StoreResult(value=True)

    async def insert(self, draft: SchoolDraft) -> StoreResult[str]:
        if self._collection is None:
            return StoreResult(error=StoreNotConnected("store is not connected"))
        try:
            result = await self._collection.insert_one(draft.to_document())
        except PyMongoError as exc:
            return StoreResult(error=exc)
        return StoreResult(value=str(result.inserted_id))

    async def find_all(self) -> StoreResult[List[School]]:
        if self._collection is None:
            return StoreResult(error=StoreNotConnected("store is not connected"))
        try:
            docs = await self._collection.find({}).sort("_id", 1).to_list(length=None)
            schools = [School.from_document(doc) for doc in docs]
        except PyMongoError as exc:
            return StoreResult(error=exc)
        except (KeyError, TypeError, ValueError) as exc:
            return StoreResult(error=ValueError(f"malformed school document: {exc!r}"))
        return StoreResult(value=schools)


class InMemorySchoolStore:
    """Process-local store for tests and local runs; contents die with the process."""

    backend = "memory"

    def __init__(self) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _guard(self) -> asyncio.Lock:
        # bound to the running loop, not to whichever loop existed at construction
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def connect(self) -> StoreResult[bool]:
        self._lock = asyncio.Lock()
        logger.info("using in-memory school store")
        return StoreResult(value=True)

    async def close(self) -> None:
        return None

    async def ping(self) -> StoreResult[bool]:
        return StoreResult(value=True)

    async def insert(self, draft: SchoolDraft) -> StoreResult[str]:
        async with self._guard():
            school_id = str(ObjectId())
            self._docs[school_id] = {"_id": school_id, **draft.to_document()}
        return StoreResult(value=school_id)

    async def find_all(self) -> StoreResult[List[School]]:
        async with self._guard():
            docs = list(self._docs.values())
        return StoreResult(value=[School.from_document(doc) for doc in docs])


def create_store(cfg: Configuration) -> SchoolStore:
    cfg.require_known_backend()
    if cfg.store_backend.lower() == "memory":
        return InMemorySchoolStore()
    return MongoSchoolStore(cfg)
