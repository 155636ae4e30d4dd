"""PriceStore: Write-only persistence of published quotes.

The oracle hands every successful cycle's quotes to a PriceStore. Writes
are idempotent upserts keyed by ``(price_time, source)``, so replaying a
cycle never duplicates rows. The oracle never reads from the store.

SqlPriceStore targets PostgreSQL in production and SQLite in tests:

.. code-block:: python

    store = SqlPriceStore.from_url("postgresql+asyncpg://user:pass@db/prices")
    await store.create_schema()
    await store.save_quotes([quote])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import Column, DateTime, Float, MetaData, String, Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .Quote import Quote

logger = logging.getLogger(__name__)


class PersistError(Exception):
    """Raised when quotes cannot be written to the store."""

    pass


class PriceStore(Protocol):
    """Persistence collaborator for published quotes."""

    async def save_quotes(self, quotes: Sequence[Quote]) -> None:
        """Upsert quotes keyed by (timestamp, source).

        :raises PersistError: If the write fails.
        """
        ...


class NullPriceStore:
    """Store that discards every write."""

    async def save_quotes(self, quotes: Sequence[Quote]) -> None:
        logger.debug(f"Discarding {len(quotes)} quote(s), no store configured")


metadata = MetaData()

sol_usd_prices = Table(
    "sol_usd_prices",
    metadata,
    Column("price_time", DateTime(timezone=True), primary_key=True),
    Column("source", String(32), primary_key=True),
    Column("price_usd", Float, nullable=False),
    Column("confidence", Float, nullable=True),
)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlPriceStore:
    """PriceStore backed by an SQL table via SQLAlchemy.

    :ivar engine: Async engine used for writes.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        """Initialize the store.

        :param engine: Async SQLAlchemy engine (PostgreSQL or SQLite).
        :raises ValueError: If the dialect has no upsert support here.
        """
        dialect = engine.dialect.name
        if dialect not in _UPSERT_DIALECTS:
            raise ValueError(
                f"Unsupported database dialect '{dialect}'. "
                f"Supported: {', '.join(sorted(_UPSERT_DIALECTS))}"
            )
        self.engine = engine
        self._insert = _UPSERT_DIALECTS[dialect]

    @classmethod
    def from_url(cls, url: str) -> SqlPriceStore:
        """Create a store for a database URL.

        :param url: SQLAlchemy async URL (e.g., "postgresql+asyncpg://...").
        :returns: The store.
        """
        return cls(create_async_engine(url, pool_pre_ping=True))

    async def create_schema(self) -> None:
        """Create the prices table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def save_quotes(self, quotes: Sequence[Quote]) -> None:
        """Upsert quotes keyed by (price_time, source).

        :param quotes: Quotes to write.
        :raises PersistError: If the database write fails.
        """
        if not quotes:
            return

        rows = [
            {
                "price_time": q.timestamp,
                "source": q.source,
                "price_usd": q.value,
                "confidence": q.confidence,
            }
            for q in quotes
        ]
        stmt = self._insert(sol_usd_prices).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[sol_usd_prices.c.price_time, sol_usd_prices.c.source],
            set_={
                "price_usd": stmt.excluded.price_usd,
                "confidence": stmt.excluded.confidence,
            },
        )

        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except (SQLAlchemyError, OSError) as e:  # asyncpg reports refused connections as OSError
            raise PersistError(f"Failed to save {len(rows)} quote(s): {e}") from e

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self.engine.dispose()
