"""Configuration management for the family-tree MCP server and Neo4j connection.

Loads configuration from environment variables and an optional .env file
in the project root.

Example .env:

    NEO4J_URI=bolt://localhost:7687
    NEO4J_USERNAME=neo4j
    NEO4J_PASSWORD=your_password_here
    NEO4J_DATABASE=neo4j
    MEDIA_ROOT=/var/lib/famtree/media
    USERS_ADMINS=alice,bob
    LOG_LEVEL=INFO
"""

import json
from typing import List

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_config_list(value: str, split_on_comma: bool = True) -> List[str]:
    """Parse a list-valued setting given either as a JSON array or comma list."""
    value = value.strip()
    if not value:
        return []
    if value.startswith("[") and value.endswith("]"):
        return [str(v) for v in json.loads(value)]
    if split_on_comma and "," in value:
        return [v.strip() for v in value.split(",") if v.strip()]
    return [value]


class Config(BaseSettings):
    """Application configuration loaded from environment / .env file.

    We use explicit aliases so the mapping to env vars is obvious and
    easy to consume from scripts.
    """

    # Neo4j configuration
    neo4j_uri: AnyUrl = Field(
        ...,
        alias="NEO4J_URI",
        description="Neo4j connection URI, e.g. bolt://localhost:7687",
    )
    neo4j_username: str = Field(
        ...,
        alias="NEO4J_USERNAME",
        description="Neo4j username",
    )
    neo4j_password: str = Field(
        ...,
        alias="NEO4J_PASSWORD",
        description="Neo4j password",
    )
    neo4j_database: str = Field(
        "neo4j",
        alias="NEO4J_DATABASE",
        description="Neo4j database name to connect to",
    )
    neo4j_max_connection_lifetime: int = Field(
        3600,
        alias="NEO4J_MAX_CONNECTION_LIFETIME",
        description="Maximum lifetime of a Neo4j connection in seconds",
    )
    neo4j_max_connection_pool_size: int = Field(
        100,
        alias="NEO4J_MAX_CONNECTION_POOL_SIZE",
        description="Maximum number of connections in the Neo4j pool",
    )

    # Media (photo blob store) configuration
    media_root: str = Field(
        "media",
        alias="MEDIA_ROOT",
        description="Directory where uploaded photo files are stored",
    )
    media_image_mime_types: str = Field(
        "image/jpeg,image/png,image/webp",
        alias="MEDIA_IMAGE_MIME_TYPES",
        description="Comma separated (or JSON list) of accepted photo MIME types",
    )

    # Users
    users_admins: str = Field(
        "",
        alias="USERS_ADMINS",
        description="Usernames that always hold every permission (comma list or JSON list)",
    )

    # Family view
    family_hops: int = Field(
        2,
        alias="FAMILY_HOPS",
        ge=0,
        le=25,
        description="Relation hops fetched around the focus people for the family view",
    )

    # Server configuration
    mcp_host: str = Field(
        "0.0.0.0",
        alias="MCP_HOST",
        description="Interface the MCP server binds to",
    )
    mcp_port: int = Field(
        8000,
        alias="MCP_PORT",
        description="Port the MCP server listens on",
    )
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Log level for server / CLI (e.g. DEBUG, INFO, WARN, ERROR)",
    )
    log_file: str = Field(
        "/tmp/famtree_mcp_server.log",
        alias="LOG_FILE",
        description="File the MCP server writes its log to",
    )

    # Pydantic v2 settings for env loading
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,  # we use explicit aliases, so keep env lookup strict
        extra="ignore",
        populate_by_name=False,
    )

    @property
    def admin_usernames(self) -> List[str]:
        return [u.lower() for u in parse_config_list(self.users_admins)]

    @property
    def allowed_image_mime_types(self) -> List[str]:
        return [m.lower() for m in parse_config_list(self.media_image_mime_types)]
