# release_conductor/__main__.py
"""
Entry point for the release-conductor MCP server.

Server imports configure_logging() first to prevent stdout pollution.
FastMCP has no lifecycle hooks, so lifecycle startup happens here before
the stdio transport takes over.
"""

import asyncio
import logging

from release_conductor.server import initialize_lifecycle, mcp

logger = logging.getLogger(__name__)


async def main() -> None:
    """Initialize lifecycle (DB + worker + signals), then run the MCP server."""
    await initialize_lifecycle()

    logger.info("Starting MCP server on stdio transport")
    await mcp.run_stdio_async()


if __name__ == "__main__":
    asyncio.run(main())
