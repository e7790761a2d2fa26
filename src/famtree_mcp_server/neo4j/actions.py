"""Transaction-bound query helpers shared by the person and user modules.

A ``*Reader`` / ``*Writer`` object wraps one managed transaction, so every
query it runs commits (or rolls back) together. ``ActionsDB`` opens that
transaction for a callback:

    people = await persondb.read(lambda act: act.find_by_name("zeus"))
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from neo4j import AsyncManagedTransaction, Record, ResultSummary

from .client import Neo4jClient

T = TypeVar("T")


class ReadActions:
    """Base for query classes bound to a single transaction."""

    def __init__(self, tx: AsyncManagedTransaction) -> None:
        self.tx = tx

    async def _records(
        self, cypher: str, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Record], ResultSummary]:
        """Run a query and return raw records (graph objects intact) and its summary."""
        result = await self.tx.run(cypher, params or {})
        records = [record async for record in result]
        summary = await result.consume()
        return records, summary

    async def _data(self, cypher: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a query and return records as plain dictionaries."""
        result = await self.tx.run(cypher, params or {})
        return await result.data()


R = TypeVar("R", bound=ReadActions)
W = TypeVar("W", bound=ReadActions)


class ActionsDB(Generic[R, W]):
    """Runs reader/writer callbacks inside managed transactions of a shared client."""

    reader_cls: Type[R]
    writer_cls: Type[W]

    def __init__(self, client: Neo4jClient) -> None:
        self.client = client

    async def read(self, fn: Callable[[R], Awaitable[T]]) -> T:
        async def work(tx: AsyncManagedTransaction) -> T:
            return await fn(self.reader_cls(tx))

        return await self.client.read_transaction(work)

    async def write(self, fn: Callable[[W], Awaitable[T]]) -> T:
        async def work(tx: AsyncManagedTransaction) -> T:
            return await fn(self.writer_cls(tx))

        return await self.client.write_transaction(work)
