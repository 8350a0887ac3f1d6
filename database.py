"""
MongoDB access for the turf booking API.

A single process-wide MongoConnection opens the Motor client on first use and
hands out the same database handle afterwards. Routes get the manager through
the ``get_connection`` dependency so tests can swap it out.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from config import MONGODB_DB_NAME, MONGODB_TIMEOUT_MS, MONGODB_URI

logger = logging.getLogger(__name__)


class MongoConnection:
    """Lazily connected, memoised database handle."""

    def __init__(
        self,
        uri: str,
        db_name: str,
        timeout_ms: int = MONGODB_TIMEOUT_MS,
        client_factory: Callable[..., Any] = AsyncIOMotorClient,
    ):
        self.uri = uri
        self.db_name = db_name
        self.timeout_ms = timeout_ms
        self._client_factory = client_factory
        self._client = None
        self._db: Optional[AsyncIOMotorDatabase] = None
        self._connecting: Optional[asyncio.Future] = None

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    async def get_database(self) -> AsyncIOMotorDatabase:
        if self._db is not None:
            return self._db
        # concurrent callers share one in-flight attempt, success or failure
        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())
        attempt = self._connecting
        try:
            db = await asyncio.shield(attempt)
        finally:
            if self._connecting is attempt and attempt.done():
                self._connecting = None
        self._db = db
        return db

    async def _connect(self) -> AsyncIOMotorDatabase:
        client = None
        try:
            client = self._client_factory(
                self.uri,
                tz_aware=True,
                serverSelectionTimeoutMS=self.timeout_ms,
            )
            await client.admin.command("ping")
        except Exception:
            logger.exception("Failed to connect to MongoDB")
            if client is not None:
                client.close()
            raise
        self._client = client
        logger.info("Connected to MongoDB (database=%s)", self.db_name)
        return client[self.db_name]

    async def ping(self) -> bool:
        try:
            db = await self.get_database()
            await db.command("ping")
            return True
        except Exception:
            return False

    def close(self) -> None:
        if self._client is not None:
            logger.info("Closing MongoDB client")
            self._client.close()
        self._client = None
        self._db = None


_connection = MongoConnection(MONGODB_URI, MONGODB_DB_NAME)


def get_connection() -> MongoConnection:
    return _connection


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    return value


def serialize_document(doc: dict) -> dict:
    """Make a stored document JSON safe (ObjectId -> str, datetime -> ISO)."""
    return _serialize_value(doc)
