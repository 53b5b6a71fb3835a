"""Key-value store used to cache installation tokens.

The token cache is a hash per installation (``token`` and ``expires_at``
fields) with a TTL. ``KeyValueStore`` describes the subset of the Redis
hash API that ``TokenService`` needs, so a ``redis.asyncio.Redis`` client
created with ``decode_responses=True`` satisfies it directly.

Key Exports:
    KeyValueStore: Protocol implemented by token stores.
    InMemoryStore: Process-local store with TTL support.
    InMemoryPipeline: Buffered hset/expire applied atomically to InMemoryStore.
    create_store: Build the store selected by configuration.

Example:
    >>> store = InMemoryStore()
    >>> await store.hset("github:installation_token:42", mapping={"token": "ghs_x"})
    >>> await store.expire("github:installation_token:42", 3000)
    >>> await store.hgetall("github:installation_token:42")
    {'token': 'ghs_x'}
"""

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import redis.asyncio as redis
import structlog

from ci_trigger.config.settings import TokenCacheConfig

log = structlog.get_logger(__name__)


class KeyValueStore(Protocol):
    """Async hash store with per-key expiry."""

    async def hgetall(self, name: str) -> Mapping[str, str]:
        """Return all fields of the hash, or an empty mapping if absent."""
        ...

    async def hset(self, name: str, mapping: Mapping[str, str]) -> Any:
        """Set fields of the hash, overwriting existing values."""
        ...

    async def expire(self, name: str, time: int | timedelta) -> Any:
        """Set the key's time-to-live in seconds."""
        ...

    async def delete(self, *names: str) -> Any:
        """Remove keys."""
        ...

    def pipeline(self, transaction: bool = True) -> Any:
        """Queue ``hset``/``expire`` calls and apply them in one ``execute()``."""
        ...

    async def aclose(self) -> None:
        """Release connections held by the store."""
        ...


class InMemoryPipeline:
    """Buffered commands applied to an ``InMemoryStore`` under its lock.

    Mirrors the chaining API of ``redis.asyncio`` pipelines: command
    methods return the pipeline and ``execute()`` returns their results.
    """

    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self._commands: list[tuple[str, tuple[Any, ...]]] = []

    async def __aenter__(self) -> "InMemoryPipeline":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._commands.clear()

    def hset(self, name: str, mapping: Mapping[str, str]) -> "InMemoryPipeline":
        self._commands.append(("_hset", (name, mapping)))
        return self

    def expire(self, name: str, time: int | timedelta) -> "InMemoryPipeline":
        self._commands.append(("_expire", (name, time)))
        return self

    async def execute(self) -> list[Any]:
        commands, self._commands = self._commands, []
        async with self._store._lock:
            return [getattr(self._store, method)(*args) for method, args in commands]


class InMemoryStore:
    """Process-local implementation of ``KeyValueStore``.

    Entries expire lazily on read. Intended for local runs and tests; use
    Redis when several processes share the token cache.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, str]] = {}
        self._expiry: dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    def _purge_if_expired(self, name: str) -> None:
        expires_at = self._expiry.get(name)
        if expires_at is not None and datetime.now(UTC) >= expires_at:
            self._data.pop(name, None)
            self._expiry.pop(name, None)
            log.debug("store_entry_expired", key=name)

    def _hset(self, name: str, mapping: Mapping[str, str]) -> int:
        self._purge_if_expired(name)
        entry = self._data.setdefault(name, {})
        added = sum(1 for key in mapping if key not in entry)
        entry.update({key: str(value) for key, value in mapping.items()})
        return added

    def _expire(self, name: str, time: int | timedelta) -> bool:
        seconds = time.total_seconds() if isinstance(time, timedelta) else time
        self._purge_if_expired(name)
        if name not in self._data:
            return False
        self._expiry[name] = datetime.now(UTC) + timedelta(seconds=seconds)
        return True

    async def hgetall(self, name: str) -> dict[str, str]:
        async with self._lock:
            self._purge_if_expired(name)
            return dict(self._data.get(name, {}))

    async def hset(self, name: str, mapping: Mapping[str, str]) -> int:
        async with self._lock:
            return self._hset(name, mapping)

    async def expire(self, name: str, time: int | timedelta) -> bool:
        async with self._lock:
            return self._expire(name, time)

    async def delete(self, *names: str) -> int:
        async with self._lock:
            removed = 0
            for name in names:
                self._expiry.pop(name, None)
                if self._data.pop(name, None) is not None:
                    removed += 1
            return removed

    async def ttl(self, name: str) -> float | None:
        """Remaining lifetime in seconds, or None for keys without expiry."""
        async with self._lock:
            self._purge_if_expired(name)
            expires_at = self._expiry.get(name)
            if expires_at is None:
                return None
            return (expires_at - datetime.now(UTC)).total_seconds()

    def pipeline(self, transaction: bool = True) -> InMemoryPipeline:
        return InMemoryPipeline(self)

    async def aclose(self) -> None:
        pass


def create_store(config: TokenCacheConfig) -> KeyValueStore:
    """Create the token store selected by configuration.

    Returns a Redis client when ``redis_url`` is set, otherwise an
    ``InMemoryStore``. No connection is opened here; Redis connects on the
    first command and connection errors surface from that command.
    """
    if config.redis_url:
        log.info("token_store_selected", backend="redis")
        return redis.from_url(config.redis_url, decode_responses=True)
    log.info("token_store_selected", backend="memory")
    return InMemoryStore()
