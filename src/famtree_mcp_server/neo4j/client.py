"""Neo4j connection and session management."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession

from ..config import Config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Neo4jClient:
    """Neo4j database client owning the single process-wide driver.

    The driver is created lazily by the first caller. Callers that arrive
    while it is being created await the same initialization instead of
    creating a second driver.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        """Initialize Neo4j client with configuration."""
        self.config = config or Config()
        self._driver: Optional[AsyncDriver] = None
        self._connecting: Optional[asyncio.Future] = None

    async def _create_driver(self) -> AsyncDriver:
        if not self.config.neo4j_password:
            logger.error("NEO4J_PASSWORD not set in environment variables or .env file")
            raise ValueError(
                "NEO4J_PASSWORD must be set in environment variables or .env file"
            )

        driver = AsyncGraphDatabase.driver(
            str(self.config.neo4j_uri),
            auth=(self.config.neo4j_username, self.config.neo4j_password),
            max_connection_lifetime=self.config.neo4j_max_connection_lifetime,
            max_connection_pool_size=self.config.neo4j_max_connection_pool_size,
        )

        # Driver creation is lazy and doesn't actually connect.
        try:
            await driver.verify_connectivity()
        except Exception as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            await driver.close()
            raise ConnectionError(
                f"Cannot connect to Neo4j database at {self.config.neo4j_uri}. "
                "Please ensure Neo4j is running and accessible."
            ) from e
        return driver

    async def connect(self) -> AsyncDriver:
        """Return the driver, establishing the connection on first use."""
        if self._driver is not None:
            return self._driver

        if self._connecting is None:
            # No await between the check and the assignment, so exactly one
            # coroutine starts the initialization.
            self._connecting = asyncio.ensure_future(self._create_driver())

        connecting = self._connecting
        try:
            driver = await asyncio.shield(connecting)
        except Exception:
            if self._connecting is connecting and connecting.done():
                self._connecting = None
            raise

        if self._driver is None:
            self._driver = driver
        return self._driver

    async def close(self) -> None:
        """Close the Neo4j driver connection."""
        driver, self._driver = self._driver, None
        self._connecting = None
        if driver is not None:
            await driver.close()

    @asynccontextmanager
    async def session(self, **kwargs: Any) -> AsyncIterator[AsyncSession]:
        """Context manager for a Neo4j session, always closed on exit."""
        driver = await self.connect()
        session = driver.session(database=self.config.neo4j_database, **kwargs)
        try:
            yield session
        finally:
            await session.close()

    async def read_transaction(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(tx, *args, **kwargs)`` inside a managed read transaction."""
        async with self.session() as session:
            return await session.execute_read(fn, *args, **kwargs)

    async def write_transaction(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(tx, *args, **kwargs)`` inside a managed write transaction.

        Everything ``fn`` runs commits together; an exception raised by
        ``fn`` rolls the whole transaction back.
        """
        async with self.session() as session:
            return await session.execute_write(fn, *args, **kwargs)

    async def verify_connectivity(self) -> bool:
        """Verify connection to Neo4j database."""
        try:
            driver = await self.connect()
            await driver.verify_connectivity()
            return True
        except Exception as e:
            logger.error("Neo4j connectivity check failed: %s", e, exc_info=True)
            return False

    async def __aenter__(self) -> "Neo4jClient":
        """Context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()
