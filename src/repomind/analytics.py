import asyncio
import time
from collections.abc import Callable
from logging import Logger, getLogger
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field

from repomind.errors import RepoMindError
from repomind.providers.cache.factory import get_cache_provider
from repomind.providers.cache.interface import CacheProvider

logger: Logger = getLogger(__name__)

VISITORS_KEY = "visitors"
TOTAL_QUERIES_KEY = "queries:total"

ACTIVE_WINDOW_MS = 24 * 60 * 60 * 1000

type EventType = Literal["query", "visit"]
type Device = Literal["mobile", "desktop", "unknown"]


def visitor_key(visitor_id: str) -> str:
    return f"visitor:{visitor_id}"


def now_ms() -> int:
    return int(time.time() * 1000)


def coerce_int(value: Any, default: int) -> int:  # pyright: ignore[reportAny]
    """Read a counter or timestamp that may have been stored as a number or as a numeric string."""

    if isinstance(value, bool):
        return default

    if isinstance(value, int):
        return value

    try:
        if isinstance(value, float):
            return int(value)
        return int(str(value))
    except (ValueError, OverflowError):
        return default


class VisitorMetadata(BaseModel):
    country: str | None = Field(default=None, description="The country the request came from.")
    device: Device | None = Field(default=None, description="The kind of device the request came from.")
    user_agent: str | None = Field(default=None, description="The user agent of the request.")


class VisitorRecord(BaseModel):
    """A visitor as stored in the `visitor:{id}` hash. Timestamps are epoch milliseconds."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    country: str = "Unknown"
    device: str = "unknown"
    last_seen: int = Field(serialization_alias="lastSeen")
    query_count: int = Field(default=0, serialization_alias="queryCount")
    first_seen: int = Field(serialization_alias="firstSeen")

    @classmethod
    def from_hash(cls, visitor_id: str, fields: dict[str, Any], now: int) -> Self:
        return cls(
            id=visitor_id,
            country=str(fields.get("country") or "Unknown"),
            device=str(fields.get("device") or "unknown"),
            last_seen=coerce_int(fields.get("lastSeen"), default=now),
            query_count=coerce_int(fields.get("queryCount"), default=0),
            first_seen=coerce_int(fields.get("firstSeen"), default=now),
        )


class AnalyticsSnapshot(BaseModel):
    """Usage statistics aggregated on read from the visitor set and the visitor hashes."""

    total_visitors: int = Field(default=0, serialization_alias="totalVisitors")
    total_queries: int = Field(default=0, serialization_alias="totalQueries")
    active_users_24h: int = Field(default=0, serialization_alias="activeUsers24h")
    device_stats: dict[str, int] = Field(default_factory=dict, serialization_alias="deviceStats")
    country_stats: dict[str, int] = Field(default_factory=dict, serialization_alias="countryStats")
    recent_visitors: list[VisitorRecord] = Field(default_factory=list, serialization_alias="recentVisitors")

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Analytics:
    """Per-visitor and aggregate usage tracking on top of a cache provider.

    Tracking never raises: a failed event is logged and dropped.
    """

    _cache_provider: CacheProvider | None
    clock: Callable[[], int]

    def __init__(self, cache_provider: CacheProvider | None = None, clock: Callable[[], int] = now_ms):
        self._cache_provider = cache_provider
        self.clock = clock

    @property
    def cache_provider(self) -> CacheProvider:
        if self._cache_provider is None:
            self._cache_provider = get_cache_provider()
        return self._cache_provider

    async def track_event(self, visitor_id: str, event_type: EventType, metadata: VisitorMetadata | None = None) -> None:
        """Record a visit or a query for a visitor in a single pipelined round trip.

        `firstSeen`, and the initial country, device and user agent, are written only when the visitor is new. The
        existence check runs before the pipeline and is not atomic with it; two concurrent first events for the same
        visitor both write the static fields, which only differ by their timestamps.
        """

        metadata = metadata or VisitorMetadata()

        try:
            cache_provider: CacheProvider = self.cache_provider
            timestamp: int = self.clock()
            key: str = visitor_key(visitor_id)

            pipeline = cache_provider.pipeline().sadd(VISITORS_KEY, visitor_id)

            if not await cache_provider.exists(key):
                _ = pipeline.hset(
                    key,
                    {
                        "firstSeen": timestamp,
                        "country": metadata.country or "Unknown",
                        "device": metadata.device or "unknown",
                        "userAgent": metadata.user_agent or "",
                    },
                )

            dynamic_fields: dict[str, Any] = {"lastSeen": timestamp}
            if metadata.country:
                dynamic_fields["country"] = metadata.country
            if metadata.device:
                dynamic_fields["device"] = metadata.device

            _ = pipeline.hset(key, dynamic_fields)

            if event_type == "query":
                _ = pipeline.incr(TOTAL_QUERIES_KEY).hincrby(key, "queryCount", 1)

            if metadata.country:
                _ = pipeline.incr(f"stats:country:{metadata.country}")
            if metadata.device:
                _ = pipeline.incr(f"stats:device:{metadata.device}")

            if not await pipeline.exec():
                logger.error(f"Failed to track {event_type} event for visitor {visitor_id}")
        except RepoMindError:
            logger.exception(f"Failed to track {event_type} event for visitor {visitor_id}")

    async def get_total_queries(self) -> int:
        try:
            return coerce_int(await self.cache_provider.get(TOTAL_QUERIES_KEY), default=0)
        except RepoMindError:
            logger.exception("Failed to fetch the total query count")
            return 0

    async def get_analytics_data(self) -> AnalyticsSnapshot:
        """Aggregate the visitor records into a snapshot.

        Device and country histograms are rebuilt from the visitor records rather than read from the `stats:*`
        counters, so the snapshot is consistent with its own visitor list. Visitors are sorted by last activity, most
        recent first.
        """

        try:
            return await self._aggregate()
        except RepoMindError:
            logger.exception("Failed to fetch analytics data")
            return AnalyticsSnapshot()

    async def _aggregate(self) -> AnalyticsSnapshot:
        cache_provider: CacheProvider = self.cache_provider

        total_visitors, total_queries, visitor_ids = await asyncio.gather(
            cache_provider.scard(VISITORS_KEY),
            cache_provider.get(TOTAL_QUERIES_KEY),
            cache_provider.smembers(VISITORS_KEY),
        )

        if not visitor_ids:
            return AnalyticsSnapshot()

        pipeline = cache_provider.pipeline()
        for visitor_id in visitor_ids:
            _ = pipeline.hgetall(visitor_key(visitor_id))

        visitor_hashes: list[Any] = await pipeline.exec()

        now: int = self.clock()
        active_since: int = now - ACTIVE_WINDOW_MS

        visitors: list[VisitorRecord] = [
            VisitorRecord.from_hash(visitor_id=visitor_id, fields=fields, now=now)
            for visitor_id, fields in zip(visitor_ids, visitor_hashes, strict=False)
            if isinstance(fields, dict) and fields
        ]

        device_stats: dict[str, int] = {"mobile": 0, "desktop": 0, "unknown": 0}
        country_stats: dict[str, int] = {}

        for visitor in visitors:
            device_stats[visitor.device] = device_stats.get(visitor.device, 0) + 1
            country_stats[visitor.country] = country_stats.get(visitor.country, 0) + 1

        visitors.sort(key=lambda visitor: visitor.last_seen, reverse=True)

        return AnalyticsSnapshot(
            total_visitors=total_visitors,
            total_queries=coerce_int(total_queries, default=0),
            active_users_24h=sum(1 for visitor in visitors if visitor.last_seen > active_since),
            device_stats=device_stats,
            country_stats=country_stats,
            recent_visitors=visitors,
        )
