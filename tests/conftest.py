"""Shared fixtures: an in-memory record store, identities and an API client."""

import asyncio
import copy
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from database import operations
from database.db import NOTIFICATIONS, get_store
from database.store import RecordStore, StoreError
from domain.authorization import Actor
from models.expense import Expense, ExpenseStatus, PaymentStatus
from models.project import DirectorPermissionsUpdate, MemberRole, Project, ProjectCreate
from models.user import Identity
from routers.auth import create_access_token


def _values_at(record, dotted_key):
    """Values found at a dotted path, stepping into lists the way MongoDB does."""
    values = [record]
    for part in dotted_key.split("."):
        found = []
        for value in values:
            if isinstance(value, list):
                found.extend(item.get(part) for item in value if isinstance(item, dict) and part in item)
            elif isinstance(value, dict) and part in value:
                found.append(value[part])
        values = found
    flattened = []
    for value in values:
        flattened.extend(value if isinstance(value, list) else [value])
    return flattened


class InMemoryRecordStore(RecordStore):
    """Dict-backed store honoring the same contract as the Mongo one.

    ``conflicts`` makes the next N versioned updates lose to a simulated
    concurrent writer. ``failing_collections`` makes writes to those
    collections raise ``StoreError``.
    """

    def __init__(self):
        self.collections = {}
        self.conflicts = 0
        self.failing_collections = set()

    def _collection(self, name):
        return self.collections.setdefault(name, {})

    def _check(self, collection):
        if collection in self.failing_collections:
            raise StoreError(f"{collection} is unavailable")

    def _matches(self, record, filters):
        return all(value in _values_at(record, key) for key, value in filters.items())

    async def get(self, collection, record_id):
        # Reads give other tasks a chance to run, like a real round trip
        await asyncio.sleep(0)
        record = self._collection(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def query(self, collection, filters):
        return [copy.deepcopy(r) for r in self._collection(collection).values() if self._matches(r, filters)]

    async def put(self, collection, record_id, record):
        self._check(collection)
        stored = copy.deepcopy(record)
        stored["id"] = record_id
        self._collection(collection)[record_id] = stored

    async def update(self, collection, record_id, fields, expected_version=None, conditions=None):
        self._check(collection)
        record = self._collection(collection).get(record_id)
        if record is None:
            return False
        if conditions and not self._matches(record, conditions):
            return False
        if expected_version is not None:
            if self.conflicts > 0:
                self.conflicts -= 1
                record["version"] = record.get("version", 0) + 1
                return False
            if record.get("version", 0) != expected_version:
                return False
            record["version"] = expected_version + 1
        record.update(copy.deepcopy(fields))
        return True

    async def delete(self, collection, record_id):
        return self._collection(collection).pop(record_id, None) is not None

    async def delete_many(self, collection, filters):
        records = self._collection(collection)
        doomed = [rid for rid, r in records.items() if self._matches(r, filters)]
        for record_id in doomed:
            del records[record_id]
        return len(doomed)

    def notifications_for(self, user_id):
        return [n for n in self._collection(NOTIFICATIONS).values() if n["user_id"] == user_id]


# Factory helpers
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def make_project(**overrides) -> Project:
    data = {
        "id": "project-1",
        "name": "Kindaruma Heights",
        "budget": Decimal("100000"),
        "admin_id": "admin-1",
        "admin_name": "Amina Admin",
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Project(**data)


def make_expense(**overrides) -> Expense:
    data = {
        "id": "expense-1",
        "project_id": "project-1",
        "title": "Cement",
        "amount": Decimal("1000"),
        "category": "Materials",
        "status": ExpenseStatus.PENDING,
        "payment_status": PaymentStatus.CREDIT,
        "paid_amount": Decimal("0"),
        "created_by": "labour-1",
        "created_by_name": "Luka Labour",
        "expense_date": NOW.date(),
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Expense(**data)


ADMIN_ACTOR = Actor(user_id="admin-1", name="Amina Admin", role=MemberRole.ADMIN)
DIRECTOR_ACTOR = Actor(user_id="director-1", name="Dawit Director", role=MemberRole.DIRECTOR)
LABOUR_ACTOR = Actor(user_id="labour-1", name="Luka Labour", role=MemberRole.LABOUR)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def admin():
    return Identity(user_id="admin-1", display_name="Amina Admin", email="amina@example.com", email_verified=True)


@pytest.fixture
def director():
    return Identity(user_id="director-1", display_name="Dawit Director", email="dawit@example.com", email_verified=True)


@pytest.fixture
def labour():
    return Identity(user_id="labour-1", display_name="Luka Labour", email="luka@example.com", email_verified=True)


@pytest.fixture
def outsider():
    return Identity(user_id="outsider-1", display_name="Omar Outsider", email="omar@example.com", email_verified=True)


@pytest.fixture
def unverified():
    return Identity(user_id="unverified-1", display_name="Uma Unverified", email="uma@example.com")


@pytest.fixture
async def project(store, admin, director, labour):
    """A project with one director (allowed to delete expenses) and one labour member."""
    created = await operations.create_project(
        store, admin, ProjectCreate(name="Kindaruma Heights", budget=Decimal("100000")),
    )
    for person in (director, labour):
        invitation = await operations.create_invitation(store, admin, created.id)
        await operations.accept_invitation(store, person, invitation.id)
    await operations.update_member_role(store, admin, created.id, director.user_id, MemberRole.DIRECTOR)
    return await operations.update_director_permissions(
        store, admin, created.id, director.user_id, DirectorPermissionsUpdate(can_delete_expenses=True),
    )


@pytest.fixture
def client(store):
    # Not used as a context manager so the startup hook never reaches MongoDB
    from main import app

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(identity: Identity):
    return {"Authorization": f"Bearer {create_access_token(identity)}"}
