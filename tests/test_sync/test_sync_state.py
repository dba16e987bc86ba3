"""Tests for sync state persistence helpers and push results."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from drift_cloud.models import PushResult, SourceDatabase, SyncError, SyncState


class TestSyncState:
    def test_cursor_for_maps_databases(self) -> None:
        state = SyncState(drift_cursor=1, bridge_cursor=2, cortex_cursor=3)
        assert state.cursor_for(SourceDatabase.PRIMARY) == 1
        assert state.cursor_for(SourceDatabase.CAUSAL) == 2
        assert state.cursor_for(SourceDatabase.SEMANTIC) == 3

    def test_with_cursor_returns_copy(self) -> None:
        state = SyncState(drift_cursor=1)
        updated = state.with_cursor(SourceDatabase.CAUSAL, 9)
        assert updated.bridge_cursor == 9
        assert state.bridge_cursor == 0

    def test_negative_cursor_rejected(self) -> None:
        with pytest.raises(ValueError, match="cortex_cursor must be non-negative"):
            SyncState(cortex_cursor=-1)

    def test_json_round_trip(self) -> None:
        state = SyncState(
            drift_cursor=40,
            bridge_cursor=5,
            cortex_cursor=0,
            last_sync_at=datetime(2026, 2, 12, 10, 30, tzinfo=timezone.utc),
            last_sync_row_count=45,
        )
        restored = SyncState.from_dict(json.loads(json.dumps(state.to_dict())))
        assert restored == state

    def test_from_dict_defaults(self) -> None:
        assert SyncState.from_dict({}) == SyncState()

    def test_from_dict_accepts_lax_timestamps(self) -> None:
        state = SyncState.from_dict({"last_sync_at": "2026-02-12 10:30"})
        assert state.last_sync_at is not None
        assert state.last_sync_at.utcoffset() is not None
        assert (state.last_sync_at.year, state.last_sync_at.hour) == (2026, 10)


class TestPushResult:
    def test_retryable_requires_errors(self) -> None:
        result = PushResult(success=True, total_rows=0, sync_state=SyncState())
        assert not result.retryable

    def test_mixed_errors_are_not_retryable(self) -> None:
        result = PushResult(
            success=False,
            total_rows=0,
            sync_state=SyncState(),
            errors=[
                SyncError(table="a", message="boom", retryable=True, status_code=503),
                SyncError(table="b", message="bad", retryable=False, status_code=400),
            ],
        )
        assert not result.retryable
        assert result.failed_tables == ["a", "b"]
