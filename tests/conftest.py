"""Shared fixtures: an in-memory database seeded with two hospitals."""

import asyncio
import inspect
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from mongomock_motor import AsyncMongoMockClient

# the in-memory client has no sessions
os.environ.setdefault("MONGO_TRANSACTIONS", "false")

import database  # noqa: E402
from models.hospitals import DeliveryAddressCreate, HospitalCreate  # noqa: E402
from models.products import ProductListing  # noqa: E402
from services import hospital_service, inventory_service  # noqa: E402

SELLER_OWNER = "USER-SELLER"
BUYER_OWNER = "USER-BUYER"
OUTSIDER = "USER-OUTSIDER"


def make_listing(**overrides) -> ProductListing:
    data = {
        "name": "Surgical Gloves",
        "manufacturer": "MedCo",
        "code": "GLV-100",
        "lot_number": "LOT-1",
        "expiry_date": datetime.now(timezone.utc) + timedelta(days=365),
        "price": Decimal("5.00"),
        "quantity": 10,
    }
    data.update(overrides)
    return ProductListing(**data)


def make_address(**overrides) -> DeliveryAddressCreate:
    data = {
        "label": "Main entrance",
        "street": "12 Harbour Road",
        "city": "Springfield",
        "postal_code": "12345",
        "country": "US",
    }
    data.update(overrides)
    return DeliveryAddressCreate(**data)


@pytest.fixture
def db():
    return AsyncMongoMockClient()[f"marketplace_{uuid.uuid4().hex}"]


@pytest.fixture
async def market(db):
    """Seller with one product (10 in stock at 5.00) and a buyer with one address."""
    seller = await hospital_service.create_hospital(
        db, HospitalCreate(name="Seller Hospital", address="1 Main St", company_name="Seller Co")
    )
    buyer = await hospital_service.create_hospital(
        db, HospitalCreate(name="Buyer Hospital", address="2 Side St", company_name="Buyer Co")
    )
    await hospital_service.assign_owner(db, seller.id, SELLER_OWNER)
    await hospital_service.assign_owner(db, buyer.id, BUYER_OWNER)

    [product] = await inventory_service.add_products(db, seller.id, [make_listing()])
    address = await hospital_service.add_delivery_address(db, buyer.id, make_address(), BUYER_OWNER)

    return SimpleNamespace(
        seller_id=seller.id,
        buyer_id=buyer.id,
        product_id=product.id,
        address_id=address.id,
    )


class InterleavingDatabase:
    """
    Wraps a database so every awaited collection call yields to the event loop
    first. Tasks started with asyncio.gather then interleave between a read
    and the write that depends on it.
    """

    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return _InterleavingCollection(self._database[name])

    def __getattr__(self, name):
        return getattr(self._database, name)


class _InterleavingCollection:
    def __init__(self, collection):
        self._collection = collection

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if not inspect.iscoroutinefunction(attr):
            return attr

        async def call(*args, **kwargs):
            await asyncio.sleep(0)
            return await attr(*args, **kwargs)
        return call


class ContendedDatabase:
    """
    Wraps a database so that another writer always gets in first: before each
    ``update_one`` guarded by one of the given counter fields, the counter of
    the target document is bumped.
    """

    def __init__(self, database, counters: dict):
        self._database = database
        self._counters = counters

    def __getitem__(self, name):
        collection = self._database[name]
        if name in self._counters:
            return _ContendedCollection(collection, self._counters[name])
        return collection

    def __getattr__(self, name):
        return getattr(self._database, name)


class _ContendedCollection:
    def __init__(self, collection, counter: str):
        self._collection = collection
        self._counter = counter

    def __getattr__(self, name):
        return getattr(self._collection, name)

    async def update_one(self, filter, update, **kwargs):
        if self._counter in filter:
            await self._collection.update_one({"_id": filter["_id"]}, {"$inc": {self._counter: 1}})
        return await self._collection.update_one(filter, update, **kwargs)


@pytest.fixture
def interleaving_db(db):
    return InterleavingDatabase(db)


class _RecordedSession:
    def __init__(self):
        self.outcome = None

    def start_transaction(self):
        return _RecordedTransaction(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _RecordedTransaction:
    def __init__(self, session):
        self._session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._session.outcome = "aborted" if exc_type else "committed"
        return False


class _RecordingClient:
    def __init__(self):
        self.sessions = []

    async def start_session(self):
        session = _RecordedSession()
        self.sessions.append(session)
        return session


WRITE_METHODS = {"insert_one", "update_one", "update_many", "find_one_and_update", "delete_one"}


class SessionRecordingDatabase:
    """
    Hands out sessions that record whether their transaction committed, and
    logs every write with the session it was issued under. The session is
    dropped before the call reaches the in-memory database.
    """

    def __init__(self, database):
        self._database = database
        self.client = _RecordingClient()
        self.writes = []

    def __getitem__(self, name):
        return _SessionRecordingCollection(self._database[name], name, self.writes)

    def __getattr__(self, name):
        return getattr(self._database, name)


class _SessionRecordingCollection:
    def __init__(self, collection, name, writes):
        self._collection = collection
        self._name = name
        self._writes = writes

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if not callable(attr):
            return attr

        def call(*args, session=None, **kwargs):
            if name in WRITE_METHODS:
                self._writes.append((self._name, name, session))
            return attr(*args, **kwargs)
        return call


@pytest.fixture
def transactional_db(db, monkeypatch):
    monkeypatch.setattr(database, "MONGO_TRANSACTIONS", True)
    return SessionRecordingDatabase(db)
