"""Data model for cloud sync: table definitions, cursors, and push results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from drift_cloud.timestamps import format_timestamp, parse_timestamp

RowValue = str | int | float | bool | bytes | None
Row = Mapping[str, RowValue]

# Reserved key a reader may attach for cursor tracking; never uploaded.
ROWID_KEY = "_rowid"


class SourceDatabase(StrEnum):
    """Local database a table is read from."""

    PRIMARY = "primary"  # drift.db
    CAUSAL = "causal"  # bridge.db
    SEMANTIC = "semantic"  # cortex.db


_CURSOR_FIELDS: dict[SourceDatabase, str] = {
    SourceDatabase.PRIMARY: "drift_cursor",
    SourceDatabase.CAUSAL: "bridge_cursor",
    SourceDatabase.SEMANTIC: "cortex_cursor",
}


@dataclass(frozen=True)
class TableDefinition:
    """A local table replicated to the cloud, keyed by its conflict columns."""

    local_table: str
    source_database: SourceDatabase
    conflict_columns: tuple[str, ...] = ("project_id", "local_id")

    @property
    def cloud_table(self) -> str:
        return f"cloud_{self.local_table}"


@dataclass
class SyncState:
    """Per-database cursors plus the bookkeeping of the last push.

    Owned by the caller between pushes; ``SyncClient.push`` never persists it.
    """

    drift_cursor: int = 0
    bridge_cursor: int = 0
    cortex_cursor: int = 0
    last_sync_at: datetime | None = None
    last_sync_row_count: int = 0

    def __post_init__(self) -> None:
        for name in _CURSOR_FIELDS.values():
            if getattr(self, name) < 0:
                msg = f"{name} must be non-negative"
                raise ValueError(msg)

    def cursor_for(self, database: SourceDatabase) -> int:
        """Return the cursor tracking the given database."""
        value: int = getattr(self, _CURSOR_FIELDS[database])
        return value

    def with_cursor(self, database: SourceDatabase, value: int) -> SyncState:
        """Return a copy with one database cursor replaced."""
        return replace(self, **{_CURSOR_FIELDS[database]: value})

    def to_dict(self) -> dict[str, Any]:
        return {
            "drift_cursor": self.drift_cursor,
            "bridge_cursor": self.bridge_cursor,
            "cortex_cursor": self.cortex_cursor,
            "last_sync_at": format_timestamp(self.last_sync_at) if self.last_sync_at else None,
            "last_sync_row_count": self.last_sync_row_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SyncState:
        """Build state from persisted JSON; missing keys fall back to defaults."""
        last_sync_at = data.get("last_sync_at")
        return cls(
            drift_cursor=int(data.get("drift_cursor", 0)),
            bridge_cursor=int(data.get("bridge_cursor", 0)),
            cortex_cursor=int(data.get("cortex_cursor", 0)),
            last_sync_at=parse_timestamp(last_sync_at) if last_sync_at else None,
            last_sync_row_count=int(data.get("last_sync_row_count", 0)),
        )


def default_sync_state() -> SyncState:
    """State for a project that has never been pushed."""
    return SyncState()


@dataclass(frozen=True)
class SyncError:
    """A failure recorded against one table (or ``"*"`` for the whole push)."""

    table: str
    message: str
    retryable: bool
    status_code: int | None = None


@dataclass
class PushResult:
    """Outcome of one ``SyncClient.push`` call."""

    success: bool
    total_rows: int
    sync_state: SyncState
    errors: list[SyncError] = field(default_factory=list)
    table_counts: dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def retryable(self) -> bool:
        """True when the push failed only for reasons a re-run can fix."""
        return bool(self.errors) and all(error.retryable for error in self.errors)

    @property
    def failed_tables(self) -> list[str]:
        return sorted({error.table for error in self.errors})


@dataclass(frozen=True)
class SyncProgress:
    """Reported to the progress callback after each table finishes."""

    table: str
    total_tables: int
    completed_tables: int
    rows_uploaded: int
    succeeded: bool


@dataclass(frozen=True)
class DatabaseStatus:
    """How far a local database is ahead of its persisted cursor."""

    source_database: SourceDatabase
    cursor: int
    local_max: int

    @property
    def pending(self) -> bool:
        return self.local_max > self.cursor
