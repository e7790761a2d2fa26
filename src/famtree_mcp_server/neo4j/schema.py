"""Constraints and indexes of the family-tree graph.

Schema statements cannot share a transaction with data writes, so they run
as auto-commit queries on their own session.
"""

import logging
from typing import List

from .client import Neo4jClient

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: List[str] = [
    "CREATE CONSTRAINT person_id IF NOT EXISTS FOR (p:Person) REQUIRE p.id IS UNIQUE",
    "CREATE INDEX person_name IF NOT EXISTS FOR (p:Person) ON (p.name)",
    "CREATE CONSTRAINT photo_id IF NOT EXISTS FOR (ph:Photo) REQUIRE ph.id IS UNIQUE",
    "CREATE CONSTRAINT user_id IF NOT EXISTS FOR (u:User) REQUIRE u.id IS UNIQUE",
    "CREATE INDEX user_username IF NOT EXISTS FOR (u:User) ON (u.username)",
    "CREATE CONSTRAINT session_id IF NOT EXISTS FOR (s:DatabaseSession) REQUIRE s.id IS UNIQUE",
    "CREATE INDEX session_user IF NOT EXISTS FOR (s:DatabaseSession) ON (s.userId)",
]


async def ensure_schema(client: Neo4jClient) -> int:
    """Create missing constraints and indexes; returns how many statements ran."""
    async with client.session() as session:
        for statement in SCHEMA_STATEMENTS:
            result = await session.run(statement)
            await result.consume()
            logger.debug("Schema statement applied: %s", statement)
    logger.info("Graph schema ensured (%d statements)", len(SCHEMA_STATEMENTS))
    return len(SCHEMA_STATEMENTS)
