import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

from database import get_connection
from main import app


class StubConnection:
    """Stands in for MongoConnection with a fixed database handle."""

    def __init__(self, db=None, error=None):
        self.db = db
        self.error = error

    async def get_database(self):
        if self.error is not None:
            raise self.error
        return self.db

    @property
    def is_connected(self):
        return self.error is None

    async def ping(self):
        return self.error is None

    def close(self):
        pass


@pytest.fixture
def db():
    return AsyncMongoMockClient()["dynamicTurf"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_connection] = lambda: StubConnection(db=db)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def offline_client():
    error = ServerSelectionTimeoutError("localhost:27017: connection refused")
    app.dependency_overrides[get_connection] = lambda: StubConnection(error=error)
    yield TestClient(app)
    app.dependency_overrides.clear()
