"""
Record store used by the operations layer.

``RecordStore`` is the narrow interface the rest of the service depends on:
records are plain dicts keyed by opaque string ids. ``MongoRecordStore``
backs it with motor. Failures of the underlying database surface as
``StoreError`` and never as business errors.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo.errors import PyMongoError

from logging_config import logger


class StoreError(Exception):
    """The record store could not complete a request."""


class ConcurrencyConflict(StoreError):
    """A conditional write kept losing to concurrent writers."""


class RecordStore:
    """Async document store keyed by string ids."""

    def new_id(self) -> str:
        return str(ObjectId())

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def query(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def put(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def update(
        self,
        collection: str,
        record_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Set ``fields`` on a record.

        With ``expected_version`` the write only applies if the stored
        ``version`` still matches, and bumps it by one. A record written
        before it carried a ``version`` counts as version 0. ``conditions``
        maps field names to the values they must currently hold. Returns
        whether a record was updated.
        """
        raise NotImplementedError

    async def delete(self, collection: str, record_id: str) -> bool:
        raise NotImplementedError

    async def delete_many(self, collection: str, filters: Dict[str, Any]) -> int:
        raise NotImplementedError


# Helpers to convert between python values and BSON documents
def to_bson(value):
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, dict):
        return {k: to_bson(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_bson(v) for v in value]
    return value


def from_bson(value):
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: from_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_bson(v) for v in value]
    return value


def serialize_object_id(doc):
    if doc.get("_id"):
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc


class MongoRecordStore(RecordStore):
    def __init__(self, db):
        self.db = db

    def _key(self, record_id: str):
        return ObjectId(record_id) if ObjectId.is_valid(record_id) else record_id

    async def get(self, collection, record_id):
        try:
            doc = await self.db[collection].find_one({"_id": self._key(record_id)})
        except PyMongoError as e:
            logger.error(f"Error reading {collection}/{record_id}: {str(e)}")
            raise StoreError(f"Could not read {collection} record") from e
        if doc is None:
            return None
        return serialize_object_id(from_bson(doc))

    async def query(self, collection, filters):
        try:
            cursor = self.db[collection].find(to_bson(filters))
            records = []
            async for doc in cursor:
                records.append(serialize_object_id(from_bson(doc)))
            return records
        except PyMongoError as e:
            logger.error(f"Error querying {collection} with {filters}: {str(e)}")
            raise StoreError(f"Could not query {collection}") from e

    async def put(self, collection, record_id, record):
        document = to_bson({k: v for k, v in record.items() if k != "id"})
        try:
            await self.db[collection].replace_one({"_id": self._key(record_id)}, document, upsert=True)
        except PyMongoError as e:
            logger.error(f"Error writing {collection}/{record_id}: {str(e)}")
            raise StoreError(f"Could not write {collection} record") from e

    async def update(self, collection, record_id, fields, expected_version=None, conditions=None):
        selector = {"_id": self._key(record_id)}
        if conditions:
            selector.update(to_bson(conditions))
        change = {"$set": to_bson(fields)}
        if expected_version is not None:
            selector["version"] = expected_version if expected_version else {"$in": [0, None]}
            change["$inc"] = {"version": 1}
        try:
            result = await self.db[collection].update_one(selector, change)
        except PyMongoError as e:
            logger.error(f"Error updating {collection}/{record_id}: {str(e)}")
            raise StoreError(f"Could not update {collection} record") from e
        return result.matched_count > 0

    async def delete(self, collection, record_id):
        try:
            result = await self.db[collection].delete_one({"_id": self._key(record_id)})
        except PyMongoError as e:
            logger.error(f"Error deleting {collection}/{record_id}: {str(e)}")
            raise StoreError(f"Could not delete {collection} record") from e
        return result.deleted_count > 0

    async def delete_many(self, collection, filters):
        try:
            result = await self.db[collection].delete_many(to_bson(filters))
        except PyMongoError as e:
            logger.error(f"Error deleting from {collection} with {filters}: {str(e)}")
            raise StoreError(f"Could not delete {collection} records") from e
        return result.deleted_count
