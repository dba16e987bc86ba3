"""Shared test fixtures for the drift cloud sync engine."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from drift_cloud.config import CloudSettings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator
    from pathlib import Path

    from drift_cloud.models import Row, SourceDatabase

TEST_TENANT_ID = "11111111-1111-1111-1111-111111111111"
TEST_PROJECT_ID = "22222222-2222-2222-2222-222222222222"
TEST_TOKEN = "test-bearer-token"
TEST_BASE_URL = "https://cloud.example.com"


class FakeRowReader:
    """In-memory LocalRowReader keyed by local table name.

    Rows whose ``_rowid`` (or integer ``local_id``) is at or below the cursor
    are skipped, like the real reader's ``WHERE rowid > :cursor``.
    """

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        *,
        max_cursors: dict[SourceDatabase, int] | None = None,
        failing_tables: set[str] | None = None,
    ) -> None:
        self.tables = tables or {}
        self.max_cursors = max_cursors or {}
        self.failing_tables = failing_tables or set()
        self.calls: list[tuple[str, SourceDatabase, int]] = []

    async def read_rows(
        self, local_table: str, source_database: SourceDatabase, since_cursor: int
    ) -> AsyncIterator[Row]:
        self.calls.append((local_table, source_database, since_cursor))
        if local_table in self.failing_tables:
            raise RuntimeError("disk I/O error")
        for row in self.tables.get(local_table, []):
            row_id = row.get("_rowid", row.get("local_id"))
            if isinstance(row_id, int) and row_id <= since_cursor:
                continue
            yield dict(row)

    async def get_max_cursor(self, source_database: SourceDatabase) -> int:
        return self.max_cursors.get(source_database, 0)


class RecordingHandler:
    """httpx.MockTransport handler recording every request.

    ``statuses`` maps a cloud table name to the status code it answers with;
    other tables answer 201.
    """

    def __init__(self, statuses: dict[str, int] | None = None) -> None:
        self.statuses = statuses or {}
        self.requests: list[httpx.Request] = []
        self.raise_for: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        if table in self.raise_for:
            raise httpx.ConnectError("connection refused", request=request)
        status = self.statuses.get(table, 201)
        body = b'{"message": "column does not exist"}' if status >= 400 else b""
        return httpx.Response(status, content=body)

    def rows_for(self, cloud_table: str) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for request in self.requests:
            if request.url.path.endswith(f"/{cloud_table}"):
                rows.extend(json.loads(request.content))
        return rows

    def requests_for(self, cloud_table: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{cloud_table}")]


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "app"
    root.mkdir()
    return root


@pytest.fixture
def cloud_settings(project_root: Path) -> CloudSettings:
    """Settings pointing at a fake HTTPS endpoint, without retries."""
    return CloudSettings(
        _env_file=None,
        supabase_url=TEST_BASE_URL,
        supabase_anon_key="anon-key",
        tenant_id=TEST_TENANT_ID,
        project_id=TEST_PROJECT_ID,
        project_root=project_root,
        retry_base_delay_seconds=0,
    )


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
async def http_client(handler: RecordingHandler) -> AsyncGenerator[httpx.AsyncClient]:
    """HTTP client whose requests are answered by the recording handler."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client
