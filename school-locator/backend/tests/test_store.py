from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import CollectionInvalid, PyMongoError, ServerSelectionTimeoutError

from config import Configuration
from models import School, SchoolDraft
from services.store import (
    SCHOOL_SCHEMA,
    InMemorySchoolStore,
    MongoSchoolStore,
    StoreNotConnected,
    create_store,
)

DRAFT = SchoolDraft(name="Alpha", address="1 Main St", latitude=40.0, longitude=-75.0)


def _fake_client(collections: list[str]):
    collection = MagicMock()
    db = MagicMock()
    db.__getitem__.return_value = collection
    db.list_collection_names = AsyncMock(return_value=collections)
    db.create_collection = AsyncMock()
    client = MagicMock()
    client.__getitem__.return_value = db
    client.admin.command = AsyncMock(return_value={"ok": 1})
    return client, db, collection


def test_memory_store_round_trip() -> None:
    store = InMemorySchoolStore()

    async def scenario():
        await store.connect()
        first = await store.insert(DRAFT)
        second = await store.insert(SchoolDraft(name="Beta", address="2 Main St", latitude=0.0, longitude=0.0))
        listed = await store.find_all()
        return first, second, listed

    first, second, listed = asyncio.run(scenario())
    assert first.ok and second.ok
    assert ObjectId.is_valid(first.value)
    assert first.value != second.value
    assert [s.name for s in listed.value] == ["Alpha", "Beta"]
    assert listed.value[0] == School(id=first.value, name="Alpha", address="1 Main St", latitude=40.0, longitude=-75.0)


def test_create_store_selects_backend() -> None:
    assert isinstance(create_store(Configuration(store_backend="memory")), InMemorySchoolStore)
    assert isinstance(create_store(Configuration(store_backend="mongo")), MongoSchoolStore)
    with pytest.raises(ValueError):
        create_store(Configuration(store_backend="redis"))


def test_mongo_connect_creates_collection_with_validator() -> None:
    client, db, collection = _fake_client([])
    store = MongoSchoolStore(Configuration(), client=client)

    result = asyncio.run(store.connect())

    assert result.ok
    client.admin.command.assert_awaited_with("ping")
    db.create_collection.assert_awaited_once_with("schools", validator=SCHOOL_SCHEMA)
    client.__getitem__.assert_called_with("school_management")


def test_mongo_connect_skips_existing_collection() -> None:
    client, db, _ = _fake_client(["schools"])
    store = MongoSchoolStore(Configuration(), client=client)
    assert asyncio.run(store.connect()).ok
    db.create_collection.assert_not_awaited()


def test_mongo_connect_tolerates_concurrent_create() -> None:
    client, db, _ = _fake_client([])
    db.create_collection = AsyncMock(side_effect=CollectionInvalid("collection schools already exists"))
    store = MongoSchoolStore(Configuration(), client=client)
    assert asyncio.run(store.connect()).ok


def test_mongo_connect_failure_is_returned() -> None:
    client, _, _ = _fake_client([])
    client.admin.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
    store = MongoSchoolStore(Configuration(), client=client)

    result = asyncio.run(store.connect())
    assert not result.ok
    assert isinstance(result.error, ServerSelectionTimeoutError)


def test_mongo_insert_returns_id() -> None:
    oid = ObjectId()
    collection = MagicMock()
    collection.insert_one = AsyncMock(return_value=SimpleNamespace(inserted_id=oid))
    store = MongoSchoolStore(Configuration(), collection=collection)

    result = asyncio.run(store.insert(DRAFT))

    assert result.ok
    assert result.value == str(oid)
    collection.insert_one.assert_awaited_once_with(
        {"name": "Alpha", "address": "1 Main St", "latitude": 40.0, "longitude": -75.0}
    )


def test_mongo_insert_failure_is_returned() -> None:
    collection = MagicMock()
    collection.insert_one = AsyncMock(side_effect=PyMongoError("disk full"))
    store = MongoSchoolStore(Configuration(), collection=collection)

    result = asyncio.run(store.insert(DRAFT))
    assert not result.ok
    assert str(result.error) == "disk full"


def test_mongo_find_all_maps_documents() -> None:
    oid = ObjectId()
    collection = MagicMock()
    collection.find.return_value.sort.return_value.to_list = AsyncMock(
        return_value=[{"_id": oid, "name": "Alpha", "address": "1 Main St", "latitude": 40, "longitude": -75.0}]
    )
    store = MongoSchoolStore(Configuration(), collection=collection)

    result = asyncio.run(store.find_all())

    assert result.ok
    assert result.value == [School(id=str(oid), name="Alpha", address="1 Main St", latitude=40.0, longitude=-75.0)]
    collection.find.assert_called_once_with({})
    collection.find.return_value.sort.assert_called_once_with("_id", 1)


def test_mongo_find_all_malformed_document() -> None:
    collection = MagicMock()
    collection.find.return_value.sort.return_value.to_list = AsyncMock(return_value=[{"_id": ObjectId(), "name": "no coords"}])
    store = MongoSchoolStore(Configuration(), collection=collection)

    result = asyncio.run(store.find_all())
    assert not result.ok
    assert "malformed school document" in str(result.error)


def test_mongo_operations_before_connect() -> None:
    store = MongoSchoolStore(Configuration())
    assert isinstance(asyncio.run(store.insert(DRAFT)).error, StoreNotConnected)
    assert isinstance(asyncio.run(store.find_all()).error, StoreNotConnected)
    assert isinstance(asyncio.run(store.ping()).error, StoreNotConnected)


def test_mongo_close_releases_client() -> None:
    client, _, _ = _fake_client(["schools"])
    store = MongoSchoolStore(Configuration(), client=client)
    asyncio.run(store.connect())
    asyncio.run(store.close())
    client.close.assert_called_once()
    assert isinstance(asyncio.run(store.insert(DRAFT)).error, StoreNotConnected)


def test_memory_store_survives_separate_event_loops() -> None:
    store = InMemorySchoolStore()

    async def burst():
        await store.connect()
        await asyncio.gather(*(store.insert(DRAFT) for _ in range(5)))
        return await store.find_all()

    asyncio.run(burst())
    listed = asyncio.run(burst())
    assert listed.ok
    assert len(listed.value) == 10
