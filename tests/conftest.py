"""Shared fixtures and in-memory fakes of the Neo4j driver objects."""
from __future__ import annotations

import asyncio
import os
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

# The tool modules build their Config at import time.
os.environ.setdefault("NEO4J_URI", "bolt://localhost:7687")
os.environ.setdefault("NEO4J_USERNAME", "neo4j")
os.environ.setdefault("NEO4J_PASSWORD", "test-password")
os.environ.setdefault("MEDIA_ROOT", "/tmp/famtree-test-media")

ZEUS = "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4c01"
HERA = "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4c02"
ARES = "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4c03"
APHRODITE = "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4c04"
MAIA = "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4c05"
HERMES = "6f1b5c2e-0d51-4c39-9f0e-1a1f2d3b4c06"


class FakeNode:
    """Stand-in for ``neo4j.graph.Node``."""

    def __init__(self, element_id: str, **props: Any) -> None:
        self.element_id = element_id
        self._props = props

    def items(self):
        return self._props.items()

    def __getitem__(self, key: str) -> Any:
        return self._props[key]


class FakeRelationship:
    """Stand-in for ``neo4j.graph.Relationship``."""

    def __init__(self, element_id: str, type: str, start_node: FakeNode, end_node: FakeNode) -> None:
        self.element_id = element_id
        self.type = type
        self.start_node = start_node
        self.end_node = end_node


class FakeResult:
    """Async result returning canned records."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None, relationships_created: int = 0) -> None:
        self.records = list(records or [])
        self.summary = SimpleNamespace(counters=SimpleNamespace(relationships_created=relationships_created))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for record in self.records:
            yield record

    async def data(self) -> List[Dict[str, Any]]:
        return list(self.records)

    async def consume(self):
        return self.summary


class FakeTransaction:
    """Records every query and answers with the scripted results in order."""

    def __init__(self, *results: Any) -> None:
        self.results = [r if isinstance(r, FakeResult) else FakeResult(r) for r in results]
        self.calls: List[SimpleNamespace] = []

    async def run(self, cypher: str, params: Optional[Dict[str, Any]] = None) -> FakeResult:
        self.calls.append(SimpleNamespace(cypher=cypher, params=params or {}))
        if not self.results:
            return FakeResult()
        return self.results.pop(0)


class FakeSession:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.closed = False

    async def execute_read(self, fn, *args, **kwargs):
        return await fn(self.tx, *args, **kwargs)

    async def execute_write(self, fn, *args, **kwargs):
        return await fn(self.tx, *args, **kwargs)

    async def run(self, cypher: str, params: Optional[Dict[str, Any]] = None) -> FakeResult:
        return await self.tx.run(cypher, params)

    async def close(self) -> None:
        self.closed = True


class FakeDriver:
    def __init__(self, tx: Optional[FakeTransaction] = None, fail: Optional[Exception] = None) -> None:
        self.tx = tx or FakeTransaction()
        self.fail = fail
        self.sessions: List[FakeSession] = []
        self.closed = False

    async def verify_connectivity(self) -> None:
        # Yield a few times so concurrent callers interleave.
        for _ in range(3):
            await asyncio.sleep(0)
        if self.fail is not None:
            raise self.fail

    def session(self, **kwargs: Any) -> FakeSession:
        session = FakeSession(self.tx)
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed = True


def person_node(element_id: str, id: str, name: str, **props: Any) -> FakeNode:
    return FakeNode(element_id, id=id, name=name, **props)


@pytest.fixture
def config():
    from famtree_mcp_server.config import Config

    return Config(
        NEO4J_URI="bolt://localhost:7687",
        NEO4J_USERNAME="neo4j",
        NEO4J_PASSWORD="secret",
    )
