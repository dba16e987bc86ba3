"""Cloud sync client: read -> redact -> upload for every catalog table.

Each table runs as an independent pipeline with its own state machine.  A
failing table never affects the others; it only holds back the cursor of its
database so that the next push re-reads it.  Cursors are computed once every
table has resolved, from tables that fully succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

import httpx

from drift_cloud.auth import require_token
from drift_cloud.catalog import TABLE_CATALOG, get_table_definition, tables_for_database
from drift_cloud.exceptions import AuthenticationError
from drift_cloud.models import (
    ROWID_KEY,
    DatabaseStatus,
    PushResult,
    SourceDatabase,
    SyncError,
    SyncProgress,
    default_sync_state,
)
from drift_cloud.redaction import redact_batch
from drift_cloud.timestamps import now_utc
from drift_cloud.uploader import BatchUploader

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from drift_cloud.auth import TokenProvider
    from drift_cloud.config import CloudSettings
    from drift_cloud.models import Row, RowValue, SyncState, TableDefinition
    from drift_cloud.reader import LocalRowReader

    ProgressCallback = Callable[[SyncProgress], None]

logger = logging.getLogger(__name__)

DEADLINE_MESSAGE = "Push deadline exceeded before the table finished uploading"


class TableSyncState(StrEnum):
    """Lifecycle of one table within a push."""

    PENDING = "pending"
    READING = "reading"
    REDACTING = "redacting"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


_FINAL_STATES = frozenset({TableSyncState.DONE, TableSyncState.FAILED})


@dataclass
class TableRun:
    """Mutable bookkeeping for one table during a push."""

    definition: TableDefinition
    state: TableSyncState = TableSyncState.PENDING
    rows_uploaded: int = 0
    max_row_id: int = 0
    errors: list[SyncError] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.state in _FINAL_STATES

    def advance(self, state: TableSyncState) -> None:
        logger.debug("%s: %s -> %s", self.definition.local_table, self.state, state)
        self.state = state

    def fail(self, message: str, *, retryable: bool, status_code: int | None = None) -> None:
        self.errors.append(
            SyncError(
                table=self.definition.local_table,
                message=message,
                retryable=retryable,
                status_code=status_code,
            )
        )
        self.advance(TableSyncState.FAILED)


def observed_row_id(row: Row) -> int | None:
    """Return the local row id used for cursor tracking, if the row carries one."""
    value = row[ROWID_KEY] if ROWID_KEY in row else row.get("local_id")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _strip_rowid(row: Row) -> dict[str, RowValue]:
    return {key: value for key, value in row.items() if key != ROWID_KEY}


class _ProgressReporter:
    """Invokes the optional progress callback; callback errors never affect the push."""

    def __init__(self, callback: ProgressCallback | None, total_tables: int) -> None:
        self._callback = callback
        self._total = total_tables
        self._completed = 0

    def report(self, run: TableRun) -> None:
        self._completed += 1
        if self._callback is None:
            return
        progress = SyncProgress(
            table=run.definition.local_table,
            total_tables=self._total,
            completed_tables=self._completed,
            rows_uploaded=run.rows_uploaded,
            succeeded=run.state is TableSyncState.DONE,
        )
        try:
            self._callback(progress)
        except Exception:
            logger.warning("Progress callback failed for %s", progress.table, exc_info=True)


class SyncClient:
    """Pushes local analysis data to the cloud.

    The client owns its configuration, its token provider and its HTTP client;
    nothing is cached at module level.
    """

    def __init__(
        self,
        settings: CloudSettings,
        token_provider: TokenProvider,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings.validate_runtime()
        self._settings = settings
        self._token_provider = token_provider
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout_seconds
        )
        self._uploader = BatchUploader(self._http_client, settings)
        self._root = settings.root_path

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> SyncClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _select_tables(self, tables: Iterable[str] | None) -> list[TableDefinition]:
        if tables is None:
            return list(TABLE_CATALOG)
        wanted = set(tables)
        unknown = sorted(name for name in wanted if get_table_definition(name) is None)
        if unknown:
            msg = f"Unknown sync tables: {', '.join(unknown)}"
            raise ValueError(msg)
        return [d for d in TABLE_CATALOG if d.local_table in wanted]

    async def push(
        self,
        reader: LocalRowReader,
        previous_state: SyncState | None = None,
        on_progress: ProgressCallback | None = None,
        full_sync: bool = False,
        *,
        tables: Iterable[str] | None = None,
    ) -> PushResult:
        """Push rows changed since ``previous_state`` to the cloud.

        Operational failures are returned in ``PushResult.errors``; the only
        exception raised is ValueError for unknown ``tables`` names.  The
        returned ``sync_state`` must be persisted by the caller.
        """
        started = time.monotonic()
        state = previous_state or default_sync_state()
        definitions = self._select_tables(tables)

        try:
            token = require_token(await self._token_provider.get_token())
        except AuthenticationError as exc:
            logger.warning("Push aborted: %s", exc)
            return PushResult(
                success=False,
                total_rows=0,
                sync_state=state,
                errors=[SyncError(table="*", message=str(exc), retryable=False)],
                duration_ms=_elapsed_ms(started),
            )

        runs = [TableRun(definition) for definition in definitions]
        reporter = _ProgressReporter(on_progress, len(runs))
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_tables)
        logger.info(
            "Pushing %d tables to %s (full_sync=%s)",
            len(runs),
            self._settings.supabase_url,
            full_sync,
        )

        tasks = [
            asyncio.create_task(
                self._run_table(
                    run,
                    reader,
                    0 if full_sync else state.cursor_for(run.definition.source_database),
                    token,
                    semaphore,
                    reporter,
                ),
                name=f"sync:{run.definition.local_table}",
            )
            for run in runs
        ]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self._settings.push_timeout_seconds)
            if pending:
                logger.warning("Push deadline reached with %d tables unfinished", len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        for run in runs:
            if not run.finished:
                run.fail(DEADLINE_MESSAGE, retryable=True)
                reporter.report(run)

        result = self._aggregate(runs, state, started)
        logger.info(
            "Push finished: %d rows, %d tables failed, %d ms",
            result.total_rows,
            len(result.failed_tables),
            result.duration_ms,
        )
        return result

    async def _run_table(
        self,
        run: TableRun,
        reader: LocalRowReader,
        since_cursor: int,
        token: str,
        semaphore: asyncio.Semaphore,
        reporter: _ProgressReporter,
    ) -> None:
        async with semaphore:
            try:
                await self._sync_table(run, reader, since_cursor, token)
            except Exception as exc:
                logger.warning(
                    "Table %s failed unexpectedly", run.definition.local_table, exc_info=True
                )
                run.fail(f"Unexpected error: {exc}", retryable=False)
        reporter.report(run)

    async def _sync_table(
        self, run: TableRun, reader: LocalRowReader, since_cursor: int, token: str
    ) -> None:
        definition = run.definition
        table = definition.local_table

        run.advance(TableSyncState.READING)
        try:
            rows = [
                row
                async for row in reader.read_rows(
                    table, definition.source_database, since_cursor
                )
            ]
        except Exception as exc:
            logger.warning("Reading %s failed: %s", table, exc)
            run.fail(f"Failed to read local rows: {exc}", retryable=False)
            return

        run.advance(TableSyncState.REDACTING)
        row_ids = [rid for rid in map(observed_row_id, rows) if rid is not None]
        try:
            redacted = redact_batch(table, [_strip_rowid(row) for row in rows], self._root)
        except Exception as exc:
            logger.warning("Redacting %s failed: %s", table, exc)
            run.fail(f"Failed to redact rows: {exc}", retryable=False)
            return

        run.advance(TableSyncState.UPLOADING)
        outcome = await self._uploader.upload(
            definition.cloud_table,
            definition.conflict_columns,
            redacted,
            tenant_id=self._settings.tenant_id,
            project_id=self._settings.project_id,
            token=token,
        )
        if not outcome.succeeded:
            logger.warning(
                "%s: %d of %d batches failed, cursor held",
                table,
                len(outcome.failures),
                outcome.batch_count,
            )
            for failure in outcome.failures:
                run.errors.append(
                    SyncError(
                        table=table,
                        message=str(failure),
                        retryable=failure.retryable,
                        status_code=failure.status_code,
                    )
                )
            run.advance(TableSyncState.FAILED)
            return

        run.rows_uploaded = outcome.rows_uploaded
        run.max_row_id = max(row_ids, default=0)
        run.advance(TableSyncState.DONE)

    def _aggregate(self, runs: list[TableRun], previous: SyncState, started: float) -> PushResult:
        done = [run for run in runs if run.state is TableSyncState.DONE]
        total_rows = sum(run.rows_uploaded for run in done)
        errors = [error for run in runs for error in run.errors]

        new_state = previous
        for database in SourceDatabase:
            db_runs = [run for run in runs if run.definition.source_database == database]
            # A cursor covers every table of its database, so a partial run holds it.
            if len(db_runs) < len(tables_for_database(database)):
                continue
            if any(run.state is not TableSyncState.DONE for run in db_runs):
                continue
            candidate = max(
                [previous.cursor_for(database)] + [run.max_row_id for run in db_runs]
            )
            new_state = new_state.with_cursor(database, candidate)
        new_state = replace(new_state, last_sync_at=now_utc(), last_sync_row_count=total_rows)

        return PushResult(
            success=not errors,
            total_rows=total_rows,
            sync_state=new_state,
            errors=errors,
            table_counts={run.definition.local_table: run.rows_uploaded for run in done},
            duration_ms=_elapsed_ms(started),
        )

    async def check_pending(
        self, reader: LocalRowReader, state: SyncState | None = None
    ) -> list[DatabaseStatus]:
        """Compare each database's highest local row id with its cursor."""
        state = state or default_sync_state()
        statuses: list[DatabaseStatus] = []
        for database in SourceDatabase:
            local_max = await reader.get_max_cursor(database)
            statuses.append(
                DatabaseStatus(
                    source_database=database,
                    cursor=state.cursor_for(database),
                    local_max=local_max,
                )
            )
        return statuses


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
