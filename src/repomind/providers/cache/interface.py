import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Mapping
from logging import Logger, getLogger
from typing import Any, ClassVar, Self

logger: Logger = getLogger(__name__)

type QueuedCommand = tuple[str, tuple[Any, ...]]


def serialize(value: Any) -> str:  # pyright: ignore[reportAny]
    return json.dumps(value)


def deserialize(raw: str) -> Any:  # pyright: ignore[reportAny]
    return json.loads(raw)


def deserialize_hash(raw: Mapping[str, str]) -> dict[str, Any]:
    """Parse every field of a hash. Fields that are not JSON (counters written by HINCRBY) are kept as the raw string."""

    parsed: dict[str, Any] = {}

    for field, value in raw.items():
        try:
            parsed[field] = deserialize(value)
        except ValueError:
            parsed[field] = value

    return parsed


def serialize_mapping(mapping: Mapping[str, Any]) -> dict[str, str]:
    return {field: serialize(value) for field, value in mapping.items()}


class CachePipeline(ABC):
    """Queues mutations and hash reads for a single round trip.

    Queue methods return the pipeline so calls can be chained. Nothing is sent until `exec` is awaited.
    """

    provider: "CacheProvider"
    commands: list[QueuedCommand]

    def __init__(self, provider: "CacheProvider"):
        self.provider = provider
        self.commands = []

    def _queue(self, command: str, *args: Any) -> Self:  # pyright: ignore[reportAny]
        self.commands.append((command, args))
        return self

    def setex(self, key: str, ttl: int, value: Any) -> Self:  # pyright: ignore[reportAny]
        return self._queue("SETEX", key, ttl, serialize(value))

    def sadd(self, key: str, *members: str) -> Self:
        return self._queue("SADD", key, *members)

    def hset(self, key: str, field_or_mapping: str | Mapping[str, Any], value: Any = None) -> Self:  # pyright: ignore[reportAny]
        mapping: Mapping[str, Any] = {field_or_mapping: value} if isinstance(field_or_mapping, str) else field_or_mapping
        return self._queue("HSET", key, serialize_mapping(mapping))

    def hincrby(self, key: str, field: str, increment: int) -> Self:
        return self._queue("HINCRBY", key, field, increment)

    def incr(self, key: str) -> Self:
        return self._queue("INCR", key)

    def hgetall(self, key: str) -> Self:
        return self._queue("HGETALL", key)

    def __len__(self) -> int:
        return len(self.commands)

    @abstractmethod
    async def _execute(self) -> list[Any]:
        """Send the queued commands and return their raw results in submission order."""

    async def exec(self) -> list[Any]:
        """Apply the queued commands and return one result per command, in the order they were queued.

        Hash reads are returned as parsed dictionaries. Returns `[]` if the batch could not be applied.
        """

        if not self.commands:
            return []

        results: list[Any] = await self.provider.guard("pipeline exec", [], self._execute())

        return [deserialize_hash(result) if isinstance(result, Mapping) else result for result in results]  # pyright: ignore[reportUnknownArgumentType]


class CacheProvider(ABC):
    """A key-value, set and hash store used for response caching and analytics.

    Public methods never raise. When the backend is slow, unreachable or answers with something unexpected, the
    failure is logged and the method returns its degraded value: `None`, `False`, `0`, `[]` or `{}`. Values are
    JSON-serialised on write and parsed on read.

    Backends implement the underscored coroutines and declare the exceptions they can recover from in
    `recoverable_errors`.
    """

    name: ClassVar[str]

    recoverable_errors: ClassVar[tuple[type[Exception], ...]] = (TimeoutError, ValueError)

    async def guard[T](self, operation: str, default: T, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except TimeoutError:
            logger.warning(f"{self.name} {operation} timed out, treating as a cache miss")
        except self.recoverable_errors as e:
            logger.warning(f"{self.name} {operation} failed: {e}")

        return default

    # Backend commands

    @abstractmethod
    async def _get(self, key: str) -> str | None: ...

    @abstractmethod
    async def _set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def _setex(self, key: str, ttl: int, value: str) -> None: ...

    @abstractmethod
    async def _delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def _exists(self, key: str) -> int: ...

    @abstractmethod
    async def _ping(self) -> bool: ...

    @abstractmethod
    async def _sadd(self, key: str, *members: str) -> int: ...

    @abstractmethod
    async def _smembers(self, key: str) -> list[str]: ...

    @abstractmethod
    async def _scard(self, key: str) -> int: ...

    @abstractmethod
    async def _hset(self, key: str, mapping: dict[str, str]) -> int: ...

    @abstractmethod
    async def _hgetall(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    async def _hincrby(self, key: str, field: str, increment: int) -> int: ...

    @abstractmethod
    async def _incr(self, key: str) -> int: ...

    @abstractmethod
    async def _keys(self, pattern: str) -> list[str]: ...

    @abstractmethod
    def pipeline(self) -> CachePipeline: ...

    @abstractmethod
    async def close(self) -> None: ...

    # Public API

    async def get(self, key: str) -> Any | None:
        async def get_and_parse() -> Any | None:
            raw: str | None = await self._get(key)
            return None if raw is None else deserialize(raw)

        return await self.guard("get", None, get_and_parse())

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:  # pyright: ignore[reportAny]
        if ttl:
            await self.setex(key, ttl, value)
            return

        await self.guard("set", None, self._set(key, serialize(value)))

    async def setex(self, key: str, ttl: int, value: Any) -> None:  # pyright: ignore[reportAny]
        await self.guard("setex", None, self._setex(key, ttl, serialize(value)))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0

        return await self.guard("delete", 0, self._delete(*keys))

    async def exists(self, key: str) -> bool:
        return await self.guard("exists", 0, self._exists(key)) == 1

    async def ping(self) -> bool:
        return await self.guard("ping", False, self._ping())

    async def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0

        return await self.guard("sadd", 0, self._sadd(key, *members))

    async def smembers(self, key: str) -> list[str]:
        return await self.guard("smembers", [], self._smembers(key))

    async def scard(self, key: str) -> int:
        return await self.guard("scard", 0, self._scard(key))

    async def hset(self, key: str, field_or_mapping: str | Mapping[str, Any], value: Any = None) -> None:  # pyright: ignore[reportAny]
        mapping: Mapping[str, Any] = {field_or_mapping: value} if isinstance(field_or_mapping, str) else field_or_mapping

        await self.guard("hset", 0, self._hset(key, serialize_mapping(mapping)))

    async def hgetall(self, key: str) -> dict[str, Any]:
        return deserialize_hash(await self.guard("hgetall", {}, self._hgetall(key)))

    async def hincrby(self, key: str, field: str, increment: int) -> int:
        return await self.guard("hincrby", 0, self._hincrby(key, field, increment))

    async def incr(self, key: str) -> int:
        return await self.guard("incr", 0, self._incr(key))

    async def keys(self, pattern: str) -> list[str]:
        """List the keys matching a glob-style pattern. Best effort: backends that cannot scan return `[]`."""

        return await self.guard("keys", [], self._keys(pattern))
