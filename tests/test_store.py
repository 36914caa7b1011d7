"""Tests for the MongoDB record store's document conversion and versioned writes."""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo.errors import ServerSelectionTimeoutError

from database.store import MongoRecordStore, StoreError, from_bson, serialize_object_id, to_bson
from models.expense import ExpenseStatus


class FakeCollection:
    def __init__(self, matched=1, error=None):
        self.calls = []
        self.matched = matched
        self.error = error

    async def update_one(self, selector, change):
        self.calls.append((selector, change))
        if self.error:
            raise self.error
        return SimpleNamespace(matched_count=self.matched)

    async def find_one(self, selector):
        if self.error:
            raise self.error
        return None


def test_to_bson_converts_nested_values():
    document = to_bson({
        "amount": Decimal("12.50"),
        "status": ExpenseStatus.APPROVED,
        "expense_date": date(2024, 5, 2),
        "members": [{"paid": Decimal("1")}],
    })
    assert document["amount"] == Decimal128("12.50")
    assert document["status"] == "approved"
    assert document["expense_date"] == datetime(2024, 5, 2)
    assert document["members"][0]["paid"] == Decimal128("1")


def test_from_bson_restores_decimals_and_id():
    oid = ObjectId()
    doc = serialize_object_id(from_bson({"_id": oid, "amount": Decimal128("99.95"), "tags": [Decimal128("1")]}))
    assert doc == {"id": str(oid), "amount": Decimal("99.95"), "tags": [Decimal("1")]}


async def test_versioned_update_filters_and_increments():
    collection = FakeCollection()
    store = MongoRecordStore({"projects": collection})
    record_id = str(ObjectId())

    assert await store.update("projects", record_id, {"total_spent": Decimal("10")}, expected_version=3)

    selector, change = collection.calls[0]
    assert selector == {"_id": ObjectId(record_id), "version": 3}
    assert change == {"$set": {"total_spent": Decimal128("10")}, "$inc": {"version": 1}}


async def test_lost_version_race_returns_false():
    store = MongoRecordStore({"projects": FakeCollection(matched=0)})
    assert not await store.update("projects", str(ObjectId()), {"total_spent": Decimal("1")}, expected_version=0)


async def test_plain_update_has_no_version_guard():
    collection = FakeCollection()
    store = MongoRecordStore({"notifications": collection})
    await store.update("notifications", "not-an-object-id", {"read": True})
    assert collection.calls[0] == ({"_id": "not-an-object-id"}, {"$set": {"read": True}})


async def test_database_errors_become_store_errors():
    store = MongoRecordStore({"projects": FakeCollection(error=ServerSelectionTimeoutError("down"))})
    with pytest.raises(StoreError):
        await store.get("projects", str(ObjectId()))


async def test_first_versioned_write_matches_records_without_version():
    collection = FakeCollection()
    store = MongoRecordStore({"expenses": collection})
    await store.update("expenses", "e-1", {"status": "approved"}, expected_version=0)
    assert collection.calls[0][0] == {"_id": "e-1", "version": {"$in": [0, None]}}


async def test_conditions_join_the_selector():
    collection = FakeCollection(matched=0)
    store = MongoRecordStore({"invitations": collection})
    claimed = await store.update(
        "invitations", "inv-1", {"status": ExpenseStatus.APPROVED},
        conditions={"status": ExpenseStatus.PENDING},
    )
    assert not claimed
    assert collection.calls[0] == ({"_id": "inv-1", "status": "pending"}, {"$set": {"status": "approved"}})
