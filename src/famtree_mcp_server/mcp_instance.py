"""Shared MCP server and Neo4j wiring for the family-tree tools.

All MCP tools and the server entrypoint must import and use this module
so that there is exactly one FastMCP, one Neo4j client and one media
store per process.
"""

from mcp.server.fastmcp import FastMCP

from .config import Config
from .media import MediaStore
from .neo4j import Neo4jClient, PersonDB, UserDB

config = Config()

# Single shared MCP server instance
mcp = FastMCP(
    "famtree-mcp-server",
    host=config.mcp_host,
    streamable_http_path="/",
    port=config.mcp_port,
)

# Shared Neo4j wiring for all tools
neo4j_client = Neo4jClient(config=config)
persondb = PersonDB(neo4j_client)
userdb = UserDB(neo4j_client)
media_store = MediaStore.from_config(config)

# Convenience alias for defining tools bound to this server
tool = mcp.tool

__all__ = ["mcp", "tool", "config", "neo4j_client", "persondb", "userdb", "media_store"]
