"""
Duet — Persistent key-value store backends.

Every backend stores JSON-serializable values under opaque string keys and
replaces a value as a whole on ``set``.  Backend-specific failures are
re-raised as ``StorageError`` so callers see a single error type.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

import structlog
from redis import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from duet.config import Settings, get_settings
from duet.exceptions import StorageError
from duet.models.document import StoredDocument

logger = structlog.get_logger("duet.storage")


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Value for {key!r} is not JSON-serializable: {exc}", key=key) from exc


def _decode(key: str, raw: str | bytes | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise StorageError(f"Stored value for {key!r} is not valid JSON", key=key) from exc


class KeyValueStore(ABC):
    """Durable get / set / delete of JSON values keyed by strings."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or ``None`` when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Replace the value under *key* as a single unit."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; deleting an absent key is not an error."""

    async def close(self) -> None:
        return None


class MemoryStore(KeyValueStore):
    """Process-local store.  Values are kept JSON-encoded so reads never
    alias a caller's objects."""

    name = "memory"

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        return _decode(key, self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = _encode(key, value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqlStore(KeyValueStore):
    """One ``documents`` row per key, written inside its own transaction."""

    name = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    async def get(self, key: str) -> Any | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(StoredDocument, key)
                return None if row is None else row.value
        except SQLAlchemyError as exc:
            logger.error("sql_store_read_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to read {key!r}", key=key) from exc

    async def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so unserializable values fail before the
        # transaction opens.
        value = json.loads(_encode(key, value))
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(StoredDocument(key=key, value=value))
        except SQLAlchemyError as exc:
            logger.error("sql_store_write_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to write {key!r}", key=key) from exc

    async def delete(self, key: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(StoredDocument, key)
                    if row is not None:
                        await session.delete(row)
        except SQLAlchemyError as exc:
            logger.error("sql_store_delete_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to delete {key!r}", key=key) from exc

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("sql_store_closed")


class RedisStore(KeyValueStore):
    """Plain string keys holding JSON text."""

    name = "redis"

    def __init__(self, client) -> None:
        self._client = client

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            logger.error("redis_store_read_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to read {key!r}", key=key) from exc
        return _decode(key, raw)

    async def set(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        try:
            await self._client.set(key, payload)
        except RedisError as exc:
            logger.error("redis_store_write_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to write {key!r}", key=key) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            logger.error("redis_store_delete_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to delete {key!r}", key=key) from exc

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis_store_closed")


async def _retrying(settings: Settings, operation, *, probe: str) -> None:
    """Run *operation* until it succeeds, backing off on backend errors."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type((RedisError, SQLAlchemyError, OSError)),
        stop=stop_after_attempt(settings.STORE_CONNECT_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        reraise=True,
    ):
        with attempt:
            logger.debug(
                "store_connect_attempt",
                probe=probe,
                attempt_number=attempt.retry_state.attempt_number,
            )
            await operation()


async def open_store(settings: Settings | None = None) -> KeyValueStore:
    """Build the backend selected by ``STORE_BACKEND`` and verify it is usable.

    Connecting is retried with exponential backoff up to
    ``STORE_CONNECT_ATTEMPTS`` times before ``StorageError`` is raised.
    """
    settings = settings or get_settings()
    backend = settings.STORE_BACKEND

    if backend == "sql":
        from duet.database import create_engine, create_schema, create_session_factory

        engine = create_engine(settings.DATABASE_URL)
        try:
            await _retrying(settings, lambda: create_schema(engine), probe="sql_schema")
        except (SQLAlchemyError, OSError) as exc:
            await engine.dispose()
            raise StorageError("Database schema could not be created") from exc
        store: KeyValueStore = SqlStore(create_session_factory(engine), engine=engine)

    elif backend == "redis":
        import redis.asyncio as aioredis

        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        try:
            await _retrying(settings, client.ping, probe="redis_ping")
        except (RedisError, OSError) as exc:
            await client.aclose()
            raise StorageError("Redis is not reachable") from exc
        store = RedisStore(client)

    else:
        store = MemoryStore()

    logger.info("store_opened", backend=store.name)
    return store
