import asyncio
import re
from logging import Logger, getLogger
from typing import Any, ClassVar, NamedTuple, override
from urllib.parse import urlparse

from redis.asyncio import Redis
from redis.asyncio.cluster import ClusterNode, RedisCluster
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisClusterException, RedisError

from repomind.providers.cache.interface import CachePipeline, CacheProvider

logger: Logger = getLogger(__name__)

DEFAULT_PORT = 6379

CONNECT_TIMEOUT = 5.0
COMMAND_TIMEOUT = 3.0
OPERATION_TIMEOUT = 3.0

MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 0.05
RETRY_BACKOFF_CAP = 2.0

CLUSTER_FLAG_PATTERNS = [re.compile(r"[?&]cluster=true", re.IGNORECASE), re.compile(r"[?&]cluster", re.IGNORECASE)]


class RedisNode(NamedTuple):
    host: str
    port: int


def _with_scheme(redis_url: str) -> str:
    return redis_url if "://" in redis_url else f"redis://{redis_url}"


def is_cluster_connection(redis_url: str) -> bool:
    """Whether a connection string asks for cluster mode.

    Cluster mode is used for an explicit `cluster=true` / `?cluster` flag, for several comma-separated hosts, or when the
    hostname itself mentions `cluster` (e.g. `redis-cluster.redis.svc.cluster.local`).
    """

    if "cluster=true" in redis_url or "?cluster" in redis_url:
        return True

    if "," in redis_url:
        return True

    try:
        hostname: str | None = urlparse(_with_scheme(redis_url)).hostname
    except ValueError:
        return False

    return hostname is not None and "cluster" in hostname


def parse_node(node_url: str) -> RedisNode:
    try:
        parsed = urlparse(_with_scheme(node_url))
        return RedisNode(host=parsed.hostname or "localhost", port=parsed.port or DEFAULT_PORT)
    except ValueError:
        host, _, port = node_url.removeprefix("redis://").partition(":")
        return RedisNode(host=host or "localhost", port=int(port) if port.isdigit() else DEFAULT_PORT)


def parse_cluster_nodes(redis_url: str) -> list[RedisNode]:
    """Parse the startup nodes of a cluster connection string with the cluster flags stripped."""

    clean_url: str = redis_url
    for pattern in CLUSTER_FLAG_PATTERNS:
        clean_url = pattern.sub("", clean_url)

    return [parse_node(node.strip()) for node in clean_url.split(",") if node.strip()]


def get_redis_client(redis_url: str, cluster: bool) -> Redis | RedisCluster:
    """Build a lazily connecting client. No connection is attempted until the first command."""

    if cluster:
        nodes: list[RedisNode] = parse_cluster_nodes(redis_url)
        credentials = urlparse(_with_scheme(redis_url.split(",")[0]))

        logger.info(f"Initialising Redis cluster client with nodes {', '.join(f'{node.host}:{node.port}' for node in nodes)}")

        return RedisCluster(
            startup_nodes=[ClusterNode(host=node.host, port=node.port) for node in nodes],
            username=credentials.username,
            password=credentials.password,
            decode_responses=True,
            socket_connect_timeout=CONNECT_TIMEOUT,
            socket_timeout=COMMAND_TIMEOUT,
            cluster_error_retry_attempts=MAX_RETRIES,
        )

    logger.info("Initialising standalone Redis client")

    return Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=CONNECT_TIMEOUT,
        socket_timeout=COMMAND_TIMEOUT,
        retry=Retry(ExponentialBackoff(cap=RETRY_BACKOFF_CAP, base=RETRY_BACKOFF_BASE), MAX_RETRIES),
    )


class RedisCachePipeline(CachePipeline):
    provider: "RedisCacheProvider"

    @override
    async def _execute(self) -> list[Any]:
        pipe = self.provider.client.pipeline(transaction=False)

        for command, args in self.commands:
            if command == "HSET":
                key, mapping = args
                pipe.hset(key, mapping=mapping)  # pyright: ignore[reportUnusedCallResult]
            else:
                pipe.execute_command(command, *args)  # pyright: ignore[reportUnusedCallResult]

        return await pipe.execute()


class RedisCacheProvider(CacheProvider):
    """A self-hosted Redis, standalone or clustered, reached through `redis.asyncio`."""

    name: ClassVar[str] = "Redis"

    recoverable_errors: ClassVar[tuple[type[Exception], ...]] = (
        TimeoutError,
        ValueError,
        OSError,
        RedisError,
        RedisClusterException,
    )

    redis_url: str
    is_cluster: bool
    client: Redis | RedisCluster

    def __init__(self, redis_url: str, client: Redis | RedisCluster | None = None):
        self.redis_url = redis_url
        self.is_cluster = is_cluster_connection(redis_url)
        self.client = client or get_redis_client(redis_url, cluster=self.is_cluster)

    @override
    async def _get(self, key: str) -> str | None:
        return await asyncio.wait_for(self.client.get(key), timeout=OPERATION_TIMEOUT)  # pyright: ignore[reportUnknownMemberType]

    @override
    async def _set(self, key: str, value: str) -> None:
        await self.client.set(key, value)  # pyright: ignore[reportUnusedCallResult]

    @override
    async def _setex(self, key: str, ttl: int, value: str) -> None:
        await asyncio.wait_for(self.client.setex(key, ttl, value), timeout=OPERATION_TIMEOUT)  # pyright: ignore[reportUnusedCallResult]

    @override
    async def _delete(self, *keys: str) -> int:
        return await self.client.delete(*keys)

    @override
    async def _exists(self, key: str) -> int:
        return await self.client.exists(key)

    @override
    async def _ping(self) -> bool:
        return bool(await self.client.ping())  # pyright: ignore[reportUnknownArgumentType]

    @override
    async def _sadd(self, key: str, *members: str) -> int:
        return await self.client.sadd(key, *members)  # pyright: ignore[reportGeneralTypeIssues]

    @override
    async def _smembers(self, key: str) -> list[str]:
        return list(await self.client.smembers(key))  # pyright: ignore[reportGeneralTypeIssues]

    @override
    async def _scard(self, key: str) -> int:
        return await self.client.scard(key)  # pyright: ignore[reportGeneralTypeIssues]

    @override
    async def _hset(self, key: str, mapping: dict[str, str]) -> int:
        return await self.client.hset(key, mapping=mapping)  # pyright: ignore[reportGeneralTypeIssues]

    @override
    async def _hgetall(self, key: str) -> dict[str, str]:
        return await self.client.hgetall(key) or {}  # pyright: ignore[reportGeneralTypeIssues]

    @override
    async def _hincrby(self, key: str, field: str, increment: int) -> int:
        return await self.client.hincrby(key, field, increment)  # pyright: ignore[reportGeneralTypeIssues]

    @override
    async def _incr(self, key: str) -> int:
        return await self.client.incr(key)

    @override
    async def _keys(self, pattern: str) -> list[str]:
        return list(await self.client.keys(pattern))

    @override
    def pipeline(self) -> RedisCachePipeline:
        return RedisCachePipeline(provider=self)

    @override
    async def close(self) -> None:
        logger.info("Closing Redis connection")
        await self.client.aclose()
