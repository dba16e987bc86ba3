"""Batch upload of redacted rows to the cloud PostgREST endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx

from drift_cloud.auth import require_token
from drift_cloud.config import REST_PATH
from drift_cloud.exceptions import NetworkError, ServerRejectionError, UploadError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from drift_cloud.config import CloudSettings
    from drift_cloud.models import RowValue

logger = logging.getLogger(__name__)

UPSERT_PREFER = "resolution=merge-duplicates,return=minimal"
_ERROR_BODY_LIMIT = 200


def json_default(obj: Any) -> Any:
    """JSON fallback for values the stdlib encoder rejects."""
    if isinstance(obj, bytes | bytearray | memoryview):
        return bytes(obj).hex()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, datetime | date):
        return obj.isoformat()
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def chunk_rows(rows: Sequence[dict[str, Any]], size: int) -> list[Sequence[dict[str, Any]]]:
    """Split rows into consecutive batches of at most ``size`` rows."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [rows[start : start + size] for start in range(0, len(rows), size)]


def tag_rows(
    rows: Sequence[Mapping[str, RowValue]], tenant_id: str, project_id: str
) -> list[dict[str, Any]]:
    """Copy rows, stamping the configured tenant and project over any local values."""
    return [{**row, "tenant_id": tenant_id, "project_id": project_id} for row in rows]


@dataclass
class UploadOutcome:
    """Result of uploading one table's rows."""

    rows_uploaded: int = 0
    batch_count: int = 0
    failures: list[UploadError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class BatchUploader:
    """Upserts rows into cloud tables in bounded, concurrently dispatched batches."""

    def __init__(self, http_client: httpx.AsyncClient, settings: CloudSettings) -> None:
        self._client = http_client
        self._settings = settings
        self._batch_size = settings.batch_size

    def _build_headers(self, token: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": UPSERT_PREFER,
        }
        if self._settings.supabase_anon_key:
            headers["apikey"] = self._settings.supabase_anon_key
        return headers

    async def _send_batch(
        self,
        cloud_table: str,
        conflict_columns: Sequence[str],
        batch: Sequence[dict[str, Any]],
        headers: dict[str, str],
    ) -> None:
        try:
            body = json.dumps(list(batch), default=json_default, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise UploadError(f"Cannot encode rows for {cloud_table}: {exc}") from exc

        url = f"{self._settings.supabase_url}{REST_PATH}/{cloud_table}"
        try:
            response = await self._client.post(
                url,
                params={"on_conflict": ",".join(conflict_columns)},
                headers=headers,
                content=body,
                timeout=self._settings.request_timeout_seconds,
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Network error uploading to {cloud_table}: {exc}") from exc

        status = response.status_code
        if response.is_success:
            return
        if status >= 500:
            raise NetworkError(f"PostgREST {status} for {cloud_table}", status_code=status)
        detail = response.text[:_ERROR_BODY_LIMIT]
        raise ServerRejectionError(
            f"PostgREST {status} for {cloud_table}: {detail}", status_code=status
        )

    async def _send_with_retry(
        self,
        cloud_table: str,
        conflict_columns: Sequence[str],
        batch: Sequence[dict[str, Any]],
        headers: dict[str, str],
    ) -> None:
        delay = self._settings.retry_base_delay_seconds
        attempts = self._settings.upload_max_attempts
        for attempt in range(attempts):
            try:
                await self._send_batch(cloud_table, conflict_columns, batch, headers)
            except UploadError as exc:
                if not exc.retryable or attempt == attempts - 1:
                    raise
                logger.debug(
                    "Retry %d/%d for %s in %.1fs: %s", attempt + 1, attempts, cloud_table, delay, exc
                )
                await asyncio.sleep(delay)
                delay *= 2
            else:
                if attempt > 0:
                    logger.info("Uploaded batch to %s after %d attempts", cloud_table, attempt + 1)
                return

    async def upload(
        self,
        cloud_table: str,
        conflict_columns: Sequence[str],
        rows: Sequence[Mapping[str, RowValue]],
        *,
        tenant_id: str,
        project_id: str,
        token: str | None,
    ) -> UploadOutcome:
        """Upsert ``rows`` into ``cloud_table``.

        Raises AuthenticationError before any request when the token is
        unusable.  Batch failures are collected in the outcome, never raised;
        the call returns only after every batch has resolved.
        """
        headers = self._build_headers(require_token(token))
        tagged = tag_rows(rows, tenant_id, project_id)
        batches = chunk_rows(tagged, self._batch_size)
        outcome = UploadOutcome(batch_count=len(batches))
        if not batches:
            return outcome

        semaphore = asyncio.Semaphore(self._settings.max_concurrent_batches)

        async def run(batch: Sequence[dict[str, Any]]) -> int:
            async with semaphore:
                await self._send_with_retry(cloud_table, conflict_columns, batch, headers)
                logger.debug("Uploaded %d rows to %s", len(batch), cloud_table)
                return len(batch)

        results = await asyncio.gather(*(run(batch) for batch in batches), return_exceptions=True)
        for result in results:
            if isinstance(result, UploadError):
                logger.warning("Batch upload to %s failed: %s", cloud_table, result)
                outcome.failures.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.rows_uploaded += result
        return outcome
