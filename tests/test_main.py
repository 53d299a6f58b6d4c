from collections.abc import AsyncGenerator, Generator
from typing import Any

import httpx
import pytest
from click.testing import CliRunner
from fastmcp.client import Client
from fastmcp.client.transports import FastMCPTransport
from inline_snapshot import snapshot

from repomind import main
from repomind.analytics import Analytics
from repomind.main import cli, clear_cache, mcp
from repomind.providers.cache.factory import cache_provider_holder
from repomind.providers.cache.redis import RedisCacheProvider


def test_main():
    assert mcp is not None


@pytest.fixture(autouse=True)
def reset_cache_provider() -> Generator[None, Any]:
    cache_provider_holder.reset()
    yield
    cache_provider_holder.reset()


@pytest.fixture
async def main_mcp_client() -> AsyncGenerator[Client[FastMCPTransport], Any]:
    async with Client[FastMCPTransport](transport=mcp) as mcp_client:
        yield mcp_client


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, Any]:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=mcp.http_app()), base_url="http://testserver") as http_client:
        yield http_client


async def test_list_tools(main_mcp_client: Client[FastMCPTransport]):
    list_tools = await main_mcp_client.list_tools()

    assert sorted(tool.name for tool in list_tools) == snapshot(
        [
            "ask_profile",
            "ask_repository",
            "generate_diagram",
            "generate_documentation",
            "generate_tests",
            "get_analytics",
            "get_file_content",
            "get_profile",
            "get_repository",
            "get_repository_details",
            "get_repository_tree",
            "select_files",
            "suggest_refactoring",
        ]
    )


async def test_ready(http_client: httpx.AsyncClient):
    response = await http_client.get("/api/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert "timestamp" in response.json()


class TestBadge:
    async def test_count(self, http_client: httpx.AsyncClient, redis_cache_provider: RedisCacheProvider):
        await redis_cache_provider.set("queries:total", 12345)
        cache_provider_holder.set(redis_cache_provider)

        response = await http_client.get("/api/stats/badge")

        assert response.json() == {"schemaVersion": 1, "label": "Total Queries", "message": "12,345", "color": "blue", "cacheSeconds": 60}

    async def test_empty(self, http_client: httpx.AsyncClient, redis_cache_provider: RedisCacheProvider):
        cache_provider_holder.set(redis_cache_provider)

        response = await http_client.get("/api/stats/badge")

        assert response.json()["message"] == "0"

    async def test_unconfigured(self, http_client: httpx.AsyncClient, clean_env: pytest.MonkeyPatch):
        response = await http_client.get("/api/stats/badge")

        assert response.status_code == 200
        assert response.json() == {"schemaVersion": 1, "label": "Total Queries", "message": "error", "color": "red"}


async def test_stats(http_client: httpx.AsyncClient, redis_cache_provider: RedisCacheProvider, monkeypatch: pytest.MonkeyPatch):
    stats_analytics = Analytics(cache_provider=redis_cache_provider)
    monkeypatch.setattr(main, "analytics", stats_analytics)

    await stats_analytics.track_event("v1", "query")

    response = await http_client.get("/api/stats")

    assert response.json()["totalQueries"] == 1
    assert response.json()["totalVisitors"] == 1


async def test_clear_cache(redis_cache_provider: RedisCacheProvider):
    await redis_cache_provider.set("repo:octocat/hello", {"name": "hello"})
    await redis_cache_provider.set("tree:octocat/hello:main", {"tree": []})
    cache_provider_holder.set(redis_cache_provider)

    assert await clear_cache() == 2


async def test_clear_cache_empty(redis_cache_provider: RedisCacheProvider):
    cache_provider_holder.set(redis_cache_provider)

    assert await clear_cache() is None


class TestCli:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "clear-cache" in result.output
        assert "cluster-info" in result.output

    def test_clear_cache_unconfigured(self, clean_env: pytest.MonkeyPatch):
        result = CliRunner().invoke(cli, ["clear-cache"])

        assert result.exit_code == 1
        assert "KV_REST_API_URL" in result.output
