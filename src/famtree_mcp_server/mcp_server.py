"""
MCP Server implementation for the family tree

This module is the entrypoint used when running the MCP server process.
It imports the shared `mcp` instance and all MCP tools so they are
registered on the same FastMCP server.
"""

from __future__ import annotations

import asyncio
import logging

from .mcp_instance import config, mcp, media_store, neo4j_client  # shared FastMCP instance
from .neo4j import ensure_schema

logging.basicConfig(
    level=getattr(logging, config.log_level.upper(), logging.INFO),
    handlers=[logging.FileHandler(config.log_file)]
)

# Import tools so their @tool decorators run and register them on `mcp`.
from .tools import person as person_tools  # noqa: F401,E402
from .tools import photos as photo_tools  # noqa: F401,E402
from .tools import relatives as relatives_tools  # noqa: F401,E402
from .tools import users as user_tools  # noqa: F401,E402


logger = logging.getLogger(__name__)


async def startup() -> None:
    """Connect to Neo4j, create the schema and the media root.

    Connection and authentication errors propagate and abort startup.
    The driver is closed again afterwards; the server reconnects on its
    own event loop with the first tool call.
    """
    try:
        await neo4j_client.connect()
        await ensure_schema(neo4j_client)
    finally:
        await neo4j_client.close()
    media_store.root.mkdir(parents=True, exist_ok=True)
    logger.info("Media files stored under %s", media_store.root)


def main() -> None:
    """Main entry point for the MCP server."""
    logger.info("Starting family-tree MCP server 'famtree-mcp-server'...")
    asyncio.run(startup())
    # Run the shared FastMCP instance; this will block the current process.
    mcp.run(transport="streamable-http")


if __name__ == "__main__":
    main()
