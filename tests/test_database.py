import asyncio
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from database import MongoConnection, serialize_document


class FakeAdmin:
    def __init__(self, error=None):
        self.error = error

    async def command(self, name):
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return {"ok": 1.0}


class FakeClient:
    def __init__(self, uri, error=None, **kwargs):
        self.uri = uri
        self.kwargs = kwargs
        self.admin = FakeAdmin(error)
        self.closed = False

    def __getitem__(self, name):
        return FakeDatabase(name, self.admin)

    def close(self):
        self.closed = True


class FakeDatabase:
    def __init__(self, name, admin):
        self.name = name
        self.command = admin.command


class ClientFactory:
    def __init__(self, errors=()):
        self.errors = list(errors)
        self.clients = []

    def __call__(self, uri, **kwargs):
        error = self.errors.pop(0) if self.errors else None
        client = FakeClient(uri, error=error, **kwargs)
        self.clients.append(client)
        return client


def test_first_call_connects_and_selects_database():
    factory = ClientFactory()
    connection = MongoConnection("mongodb://db:27017", "dynamicTurf", timeout_ms=1500, client_factory=factory)

    db = asyncio.run(connection.get_database())

    assert db.name == "dynamicTurf"
    assert connection.is_connected
    assert factory.clients[0].uri == "mongodb://db:27017"
    assert factory.clients[0].kwargs["serverSelectionTimeoutMS"] == 1500
    assert factory.clients[0].kwargs["tz_aware"] is True


def test_handle_is_memoised():
    factory = ClientFactory()
    connection = MongoConnection("mongodb://db", "dynamicTurf", client_factory=factory)

    async def twice():
        return await connection.get_database(), await connection.get_database()

    first, second = asyncio.run(twice())

    assert first is second
    assert len(factory.clients) == 1


def test_concurrent_first_calls_share_one_attempt():
    factory = ClientFactory()
    connection = MongoConnection("mongodb://db", "dynamicTurf", client_factory=factory)

    async def many():
        return await asyncio.gather(*(connection.get_database() for _ in range(5)))

    handles = asyncio.run(many())

    assert len(factory.clients) == 1
    assert all(h is handles[0] for h in handles)


def test_failed_connect_is_raised_and_retried_later(caplog):
    factory = ClientFactory(errors=[ServerSelectionTimeoutError("refused")])
    connection = MongoConnection("mongodb://db", "dynamicTurf", client_factory=factory)

    with pytest.raises(ServerSelectionTimeoutError):
        asyncio.run(connection.get_database())

    assert not connection.is_connected
    assert factory.clients[0].closed
    assert "Failed to connect to MongoDB" in caplog.text

    db = asyncio.run(connection.get_database())
    assert db.name == "dynamicTurf"
    assert len(factory.clients) == 2


def test_ping_reports_failure_without_raising():
    factory = ClientFactory(errors=[ServerSelectionTimeoutError("refused")])
    connection = MongoConnection("mongodb://db", "dynamicTurf", client_factory=factory)

    assert asyncio.run(connection.ping()) is False


def test_close_forgets_handle():
    factory = ClientFactory()
    connection = MongoConnection("mongodb://db", "dynamicTurf", client_factory=factory)
    asyncio.run(connection.get_database())

    connection.close()

    assert factory.clients[0].closed
    assert not connection.is_connected


def test_serialize_document():
    oid = ObjectId()
    doc = {
        "_id": oid,
        "createdAt": datetime(2024, 6, 1, 10, 0),
        "paidAt": datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc),
        "items": [{"ref": oid, "qty": 2}],
        "note": None,
    }

    assert serialize_document(doc) == {
        "_id": str(oid),
        "createdAt": "2024-06-01T10:00:00+00:00",
        "paidAt": "2024-06-01T10:00:00+00:00",
        "items": [{"ref": str(oid), "qty": 2}],
        "note": None,
    }


def test_concurrent_first_calls_share_one_failed_attempt():
    factory = ClientFactory(errors=[ServerSelectionTimeoutError("refused")])
    connection = MongoConnection("mongodb://db", "dynamicTurf", client_factory=factory)

    async def many():
        return await asyncio.gather(
            *(connection.get_database() for _ in range(5)), return_exceptions=True
        )

    results = asyncio.run(many())

    assert len(factory.clients) == 1
    assert all(isinstance(r, ServerSelectionTimeoutError) for r in results)
    assert not connection.is_connected

    # the failed attempt is forgotten, so the next request tries again
    db = asyncio.run(connection.get_database())
    assert db.name == "dynamicTurf"
    assert len(factory.clients) == 2
