import os
from logging import Logger, getLogger
from typing import Any, ClassVar, override

import httpx

from repomind.errors import CacheCommandError, CacheConfigurationError
from repomind.providers.cache.interface import CachePipeline, CacheProvider

logger: Logger = getLogger(__name__)

REQUEST_TIMEOUT = 10.0


def get_hosted_kv_url() -> str | None:
    return os.getenv("KV_REST_API_URL")


def get_hosted_kv_token() -> str | None:
    return os.getenv("KV_REST_API_TOKEN")


def _unwrap(command: str, payload: Any) -> Any:  # pyright: ignore[reportAny]
    """Extract the `result` of a REST response, raising for `error` responses."""

    if not isinstance(payload, dict):
        raise CacheCommandError(command=command, message=f"Unexpected response: {payload!r}")

    if error := payload.get("error"):  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
        raise CacheCommandError(command=command, message=str(error))  # pyright: ignore[reportUnknownArgumentType]

    result = payload.get("result")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]

    # HGETALL answers with a flat [field, value, field, value, ...] list
    if command == "HGETALL":
        if not result:
            return {}
        return dict(zip(result[::2], result[1::2], strict=True))  # pyright: ignore[reportUnknownArgumentType]

    return result  # pyright: ignore[reportUnknownVariableType]


def _flatten(command: str, args: tuple[Any, ...]) -> list[Any]:
    if command == "HSET":
        key, mapping = args
        return ["HSET", key, *[item for pair in mapping.items() for item in pair]]

    return [command, *args]


class HostedKVCachePipeline(CachePipeline):
    provider: "HostedKVCacheProvider"

    @override
    async def _execute(self) -> list[Any]:
        body: list[list[Any]] = [_flatten(command, args) for command, args in self.commands]

        response = await self.provider.http_client.post("/pipeline", json=body)
        _ = response.raise_for_status()

        payloads: list[Any] = response.json()

        if len(payloads) != len(self.commands):
            raise CacheCommandError(command="PIPELINE", message=f"Expected {len(self.commands)} results, got {len(payloads)}")

        return [_unwrap(command, payload) for (command, _args), payload in zip(self.commands, payloads, strict=True)]


class HostedKVCacheProvider(CacheProvider):
    """A hosted Redis-compatible key-value service (Vercel KV / Upstash) reached over its REST API.

    Every command is a JSON array POSTed to the service root; pipelines are POSTed to `/pipeline` in one request.
    The service cannot scan keys by pattern, so `keys` always returns `[]`.
    """

    name: ClassVar[str] = "Vercel KV"

    recoverable_errors: ClassVar[tuple[type[Exception], ...]] = (
        TimeoutError,
        TypeError,
        ValueError,
        httpx.HTTPError,
        CacheCommandError,
    )

    http_client: httpx.AsyncClient

    def __init__(self, url: str | None = None, token: str | None = None, http_client: httpx.AsyncClient | None = None):
        if http_client is not None:
            self.http_client = http_client
            return

        if not (url := url or get_hosted_kv_url()):
            raise CacheConfigurationError(setting="KV_REST_API_URL", message="KV_REST_API_URL is required for the Vercel KV cache provider.")

        if not (token := token or get_hosted_kv_token()):
            raise CacheConfigurationError(setting="KV_REST_API_TOKEN", message="KV_REST_API_TOKEN is required for the Vercel KV cache provider.")

        self.http_client = httpx.AsyncClient(
            base_url=url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=REQUEST_TIMEOUT,
        )

    async def _command(self, *args: Any) -> Any:  # pyright: ignore[reportAny]
        command: str = str(args[0])

        response = await self.http_client.post("/", json=list(args))
        _ = response.raise_for_status()

        return _unwrap(command, response.json())

    async def _integer_command(self, *args: Any) -> int:  # pyright: ignore[reportAny]
        result = await self._command(*args)  # pyright: ignore[reportAny]

        if isinstance(result, bool) or not isinstance(result, int | str):
            raise CacheCommandError(command=str(args[0]), message=f"Expected an integer reply, got {result!r}")

        return int(result)

    @override
    async def _get(self, key: str) -> str | None:
        return await self._command("GET", key)

    @override
    async def _set(self, key: str, value: str) -> None:
        await self._command("SET", key, value)

    @override
    async def _setex(self, key: str, ttl: int, value: str) -> None:
        await self._command("SETEX", key, ttl, value)

    @override
    async def _delete(self, *keys: str) -> int:
        return await self._integer_command("DEL", *keys)

    @override
    async def _exists(self, key: str) -> int:
        return await self._integer_command("EXISTS", key)

    @override
    async def _ping(self) -> bool:
        return await self._command("PING") == "PONG"

    @override
    async def _sadd(self, key: str, *members: str) -> int:
        return await self._integer_command("SADD", key, *members)

    @override
    async def _smembers(self, key: str) -> list[str]:
        return list(await self._command("SMEMBERS", key) or [])

    @override
    async def _scard(self, key: str) -> int:
        return await self._integer_command("SCARD", key)

    @override
    async def _hset(self, key: str, mapping: dict[str, str]) -> int:
        return await self._integer_command(*_flatten("HSET", (key, mapping)))

    @override
    async def _hgetall(self, key: str) -> dict[str, str]:
        return await self._command("HGETALL", key)

    @override
    async def _hincrby(self, key: str, field: str, increment: int) -> int:
        return await self._integer_command("HINCRBY", key, field, increment)

    @override
    async def _incr(self, key: str) -> int:
        return await self._integer_command("INCR", key)

    @override
    async def _keys(self, pattern: str) -> list[str]:
        logger.warning(f"Vercel KV does not support listing keys by pattern, ignoring keys({pattern!r})")
        return []

    @override
    def pipeline(self) -> HostedKVCachePipeline:
        return HostedKVCachePipeline(provider=self)

    @override
    async def close(self) -> None:
        await self.http_client.aclose()
