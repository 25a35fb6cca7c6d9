import os

# Override DATABASE_URL before any telemetry imports — uses SQLite in-memory
os.environ["DATABASE_URL"] = "sqlite://"

import asyncio  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from telemetry.db import Base, engine, get_db  # noqa: E402
from telemetry.api import app  # noqa: E402
from telemetry.errors import SinkWriteFailure  # noqa: E402

# Reuse the same engine that telemetry.db created (now SQLite via env override)
TestSession = sessionmaker(bind=engine)

SERVICE_UUID = "3843d836-4f99-346c-b334-ccc8e9dfafab"
CHAR_UUID = "3843d836-4f99-346c-b334-ccc8e9dfafab"


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def store_app(db):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def client(store_app):
    with TestClient(store_app) as c:
        yield c


class FakeCharacteristic:
    def __init__(self, fail=None):
        self.callback = None
        self.fail = fail

    async def subscribe(self, callback):
        if self.fail:
            raise self.fail
        self.callback = callback

    def emit(self, payload):
        self.callback(payload)


class FakeService:
    def __init__(self, characteristics):
        self.characteristics = characteristics

    async def get_characteristic(self, uuid):
        return self.characteristics.get(uuid)


class FakeLink:
    def __init__(self, device, services):
        self.device = device
        self.services = services
        self.closed = False

    async def get_service(self, uuid):
        return self.services.get(uuid)

    async def disconnect(self):
        self.closed = True
        self.device.drop()


class FakeDevice:
    def __init__(self, name, services, link_error=None):
        self.name = name
        self.services = services
        self.link_error = link_error
        self.observers = []

    def on_disconnect(self, callback):
        self.observers.append(callback)

    async def connect_link(self):
        if self.link_error:
            raise self.link_error
        self.link = FakeLink(self, self.services)
        return self.link

    def drop(self):
        for observer in list(self.observers):
            observer()


class FakeTransport:
    """In-process transport with one device named MIRAS."""

    def __init__(self, *, discover_error=None, link_error=None, subscribe_error=None):
        self.characteristic = FakeCharacteristic(fail=subscribe_error)
        service = FakeService({CHAR_UUID: self.characteristic})
        self.device = FakeDevice("MIRAS", {SERVICE_UUID: service}, link_error=link_error)
        self.discover_error = discover_error
        self.discover_calls = []

    async def discover(self, name_filter, service_allowlist):
        self.discover_calls.append((name_filter, list(service_allowlist)))
        if self.discover_error:
            raise self.discover_error
        return self.device if name_filter == self.device.name else None


class RecordingSink:
    """Persistence sink that records writes; fails the writes listed in ``fail_calls``."""

    def __init__(self, fail_calls=()):
        self.writes = []
        self.calls = 0
        self.fail_calls = set(fail_calls)

    async def write(self, collection, document_key, batch):
        self.calls += 1
        if self.calls in self.fail_calls:
            raise SinkWriteFailure("store rejected the batch")
        self.writes.append((collection, document_key, batch))


class SteppingClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def clock():
    return SteppingClock()


def run(coro):
    return asyncio.run(coro)
