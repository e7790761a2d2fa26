"""
Neo4j database client, connection management, and low-level queries.

This package should contain ONLY Neo4j-specific logic:
- Connection/client setup
- Raw Cypher query functions and the conversion of their results

Higher-level domain logic and compositions of these queries
belong in `family.py` and the `tools` package.
"""

from .client import Neo4jClient
from .person import ALL_PHOTOS, DeletedPeople, DeletedPerson, PersonDB, PersonReader, PersonWriter, RemovedPhoto
from .schema import ensure_schema
from .user import UserDB, UserReader, UserWriter

__all__ = [
    "ALL_PHOTOS",
    "DeletedPeople",
    "DeletedPerson",
    "Neo4jClient",
    "PersonDB",
    "PersonReader",
    "PersonWriter",
    "RemovedPhoto",
    "UserDB",
    "UserReader",
    "UserWriter",
    "ensure_schema",
]
