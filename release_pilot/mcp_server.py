"""MCP server exposing the provider fetchers as tools.

Uses stdio transport so an assistant (Claude Desktop, Cursor, an OpenAI
tool-calling loop) can pull releases, metrics and incidents on demand.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from release_pilot.config import Settings, get_settings
from release_pilot.sources import (
    FetchResult,
    fetch_health_metrics,
    fetch_incidents,
    fetch_release_highlights,
)

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP


def result_json(result: FetchResult[object]) -> str:
    """Serialize a fetch result for a tool response."""
    return result.model_dump_json(by_alias=True, indent=2)


def releases_tool(settings: Settings, repo: str) -> str:
    """Latest releases for an ``owner/repo``."""
    owner, _, name = repo.partition("/")
    scoped = settings.model_copy(update={"github_repo": repo})
    return result_json(fetch_release_highlights(scoped, name or owner))


def metrics_tool(settings: Settings, product_id: str) -> str:
    return result_json(fetch_health_metrics(settings, product_id))


def incidents_tool(settings: Settings, product_id: str) -> str:
    return result_json(fetch_incidents(settings, product_id))


def build_server(settings: Settings) -> FastMCP:
    """Construct the FastMCP server with the provider tools."""
    from mcp.server.fastmcp import FastMCP

    mcp = FastMCP(
        "release-pilot",
        instructions=(
            "Release Pilot tracks releases, health metrics and incidents for a "
            "product. Use the tools to fetch live data; results fall back to "
            "canned data when a provider is unavailable."
        ),
    )

    @mcp.tool(name="releases_fetchLatest")
    def releases_fetch_latest(repo: str) -> str:
        """Fetch the latest releases from a GitHub repository.

        Args:
            repo: GitHub repository in format 'owner/repo'
        """
        return releases_tool(settings, repo)

    @mcp.tool(name="metrics_getHealth")
    def metrics_get_health(productId: str) -> str:  # noqa: N803
        """Get health metrics for a product from Datadog.

        Args:
            productId: Product identifier to fetch metrics for
        """
        return metrics_tool(settings, productId)

    @mcp.tool(name="incidents_listRecent")
    def incidents_list_recent(productId: str) -> str:  # noqa: N803
        """List recent incidents for a product.

        Args:
            productId: Product identifier to fetch incidents for
        """
        return incidents_tool(settings, productId)

    return mcp


def serve_stdio(settings: Settings | None = None) -> None:
    """Start the MCP server on stdio."""
    logger.info("Starting MCP server on stdio")
    build_server(settings or get_settings()).run(transport="stdio")
