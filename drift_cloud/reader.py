"""Local row readers feeding the sync client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import text

from drift_cloud.catalog import is_identifier, tables_for_database
from drift_cloud.database import create_engine
from drift_cloud.models import ROWID_KEY, SourceDatabase

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from drift_cloud.models import Row

logger = logging.getLogger(__name__)


@runtime_checkable
class LocalRowReader(Protocol):
    """Reads rows changed since a cursor from the local databases."""

    def read_rows(
        self, local_table: str, source_database: SourceDatabase, since_cursor: int
    ) -> AsyncIterator[Row]:
        """Yield rows of ``local_table`` with a row id above ``since_cursor``.

        The iterator is finite and can be consumed only once.
        """
        ...

    async def get_max_cursor(self, source_database: SourceDatabase) -> int:
        """Return the highest row id currently stored in the database."""
        ...


class SqliteRowReader:
    """Reader over the drift, bridge and cortex SQLite files.

    Each yielded row carries its SQLite rowid under ``_rowid`` for cursor
    tracking.  Tables missing from a database yield no rows.
    """

    def __init__(self, paths: Mapping[SourceDatabase, Path]) -> None:
        self._paths = dict(paths)
        self._engines: dict[SourceDatabase, AsyncEngine] = {}

    @classmethod
    def from_drift_dir(cls, drift_dir: Path) -> SqliteRowReader:
        """Build a reader for the standard ``.drift`` directory layout."""
        return cls(
            {
                SourceDatabase.PRIMARY: drift_dir / "drift.db",
                SourceDatabase.CAUSAL: drift_dir / "bridge.db",
                SourceDatabase.SEMANTIC: drift_dir / "cortex.db",
            }
        )

    def _engine(self, source_database: SourceDatabase) -> AsyncEngine | None:
        engine = self._engines.get(source_database)
        if engine is not None:
            return engine
        path = self._paths.get(source_database)
        if path is None or not path.exists():
            return None
        engine = create_engine(path)
        self._engines[source_database] = engine
        return engine

    async def _existing_tables(self, engine: AsyncEngine) -> set[str]:
        async with engine.connect() as conn:
            result = await conn.execute(
                text("SELECT name FROM sqlite_master WHERE type = 'table'")
            )
            return {row[0] for row in result}

    async def read_rows(
        self, local_table: str, source_database: SourceDatabase, since_cursor: int
    ) -> AsyncIterator[Row]:
        if not is_identifier(local_table):
            msg = f"Invalid table name: {local_table!r}"
            raise ValueError(msg)
        engine = self._engine(source_database)
        if engine is None:
            logger.debug("No %s database, skipping %s", source_database, local_table)
            return
        if local_table not in await self._existing_tables(engine):
            logger.debug("Table %s not present in %s database", local_table, source_database)
            return

        query = text(
            f'SELECT rowid AS {ROWID_KEY}, * FROM "{local_table}" '
            "WHERE rowid > :cursor ORDER BY rowid"
        )
        async with engine.connect() as conn:
            result = await conn.execute(query, {"cursor": since_cursor})
            for row in result.mappings():
                yield dict(row)

    async def get_max_cursor(self, source_database: SourceDatabase) -> int:
        engine = self._engine(source_database)
        if engine is None:
            return 0
        existing = await self._existing_tables(engine)
        highest = 0
        async with engine.connect() as conn:
            for definition in tables_for_database(source_database):
                if definition.local_table not in existing:
                    continue
                result = await conn.execute(
                    text(f'SELECT MAX(rowid) FROM "{definition.local_table}"')
                )
                value = result.scalar()
                if value is not None:
                    highest = max(highest, int(value))
        return highest

    async def close(self) -> None:
        """Dispose all open engines."""
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()
