import asyncio
from datetime import UTC, datetime
from logging import Logger
from typing import Any, Literal

import click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from repomind.analytics import TOTAL_QUERIES_KEY, Analytics, coerce_int
from repomind.assistant import RepositoryAssistant
from repomind.caching import ResponseCache
from repomind.clients.github import GitHubClient
from repomind.errors import RepoMindError
from repomind.providers.ai.cluster import ClusterAIProvider
from repomind.providers.ai.cluster_discovery import get_cluster_ai_config, get_cluster_ai_health_url
from repomind.providers.cache.factory import get_cache_provider
from repomind.providers.cache.interface import CacheProvider
from repomind.servers.assistant import AssistantServer
from repomind.servers.devtools import DevToolsServer
from repomind.servers.repository import RepositoryServer

logger: Logger = get_logger(name=__name__)

BADGE_LABEL = "Total Queries"
BADGE_CACHE_SECONDS = 60

mcp: FastMCP[None] = FastMCP[None](name="RepoMind")

mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=True, logger=logger))

analytics: Analytics = Analytics()

assistant: RepositoryAssistant = RepositoryAssistant(
    github_client=GitHubClient(logger=logger),
    response_cache=ResponseCache(),
    analytics=analytics,
    logger=logger,
)

repository_server: RepositoryServer = RepositoryServer(assistant=assistant, logger=logger)
_ = repository_server.register_tools(fastmcp=mcp)

assistant_server: AssistantServer = AssistantServer(assistant=assistant, logger=logger)
_ = assistant_server.register_tools(fastmcp=mcp)

devtools_server: DevToolsServer = DevToolsServer(logger=logger)
_ = devtools_server.register_tools(fastmcp=mcp)


@mcp.custom_route(path="/api/ready", methods=["GET"])
async def ready(request: Request) -> JSONResponse:  # pyright: ignore[reportUnusedParameter]
    return JSONResponse({"status": "ready", "timestamp": datetime.now(tz=UTC).isoformat()})


@mcp.custom_route(path="/api/stats/badge", methods=["GET"])
async def stats_badge(request: Request) -> JSONResponse:  # pyright: ignore[reportUnusedParameter]
    """A shields.io endpoint badge with the total number of answered queries."""

    try:
        cache_provider: CacheProvider = get_cache_provider()
        count: int = coerce_int(await cache_provider.get(TOTAL_QUERIES_KEY), default=0)
    except RepoMindError as e:
        logger.error(f"Failed to fetch query stats: {e}")
        return JSONResponse({"schemaVersion": 1, "label": BADGE_LABEL, "message": "error", "color": "red"})

    return JSONResponse(
        {"schemaVersion": 1, "label": BADGE_LABEL, "message": f"{count:,}", "color": "blue", "cacheSeconds": BADGE_CACHE_SECONDS}
    )


@mcp.custom_route(path="/api/stats", methods=["GET"])
async def stats(request: Request) -> JSONResponse:  # pyright: ignore[reportUnusedParameter]
    snapshot = await analytics.get_analytics_data()

    return JSONResponse(snapshot.to_json_dict())


async def clear_cache() -> int | None:
    """Delete every cache key. Returns None when the provider cannot list keys."""

    cache_provider: CacheProvider = get_cache_provider()

    try:
        if not (keys := await cache_provider.keys("*")):
            return None

        return await cache_provider.delete(*keys)
    finally:
        await cache_provider.close()


async def cluster_info() -> dict[str, Any]:
    config = get_cluster_ai_config()
    provider = ClusterAIProvider()

    try:
        healthy, models = await asyncio.gather(provider.check_health(), provider.get_available_models())
    finally:
        await provider.http_client.aclose()

    return {
        **config.model_dump(),
        "chat_base_url": provider.base_url,
        "health_url": get_cluster_ai_health_url(),
        "healthy": healthy,
        "models": models,
    }


@click.group()
def cli():
    """RepoMind: chat with an AI assistant about GitHub repositories and profiles."""


@cli.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def run(mcp_transport: Literal["stdio", "streamable-http"]):
    mcp.run(transport=mcp_transport)


@cli.command(name="clear-cache")
def clear_cache_command():
    """Delete all cache entries. Only supported by providers that can list keys."""

    try:
        deleted: int | None = asyncio.run(clear_cache())
    except RepoMindError as e:
        raise click.ClickException(str(e)) from e

    if deleted is None:
        click.echo("No cache entries found, or the cache provider does not support listing keys (Vercel KV does not).")
        return

    click.echo(f"Deleted {deleted} cache entries.")


@cli.command(name="cluster-info")
def cluster_info_command():
    """Show how the cluster AI service is reached and whether it is healthy."""

    info: dict[str, Any] = asyncio.run(cluster_info())

    for key, value in info.items():  # pyright: ignore[reportAny]
        click.echo(f"{key}: {value}")


if __name__ == "__main__":
    cli()
