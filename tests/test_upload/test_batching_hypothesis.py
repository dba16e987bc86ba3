"""Property-based tests for batched uploads."""

from __future__ import annotations

import asyncio
import json
import math
from typing import TYPE_CHECKING, Any

import httpx
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from drift_cloud.uploader import BatchUploader
from tests.conftest import TEST_PROJECT_ID, TEST_TENANT_ID, TEST_TOKEN

if TYPE_CHECKING:
    from drift_cloud.config import CloudSettings
    from drift_cloud.uploader import UploadOutcome

PROPERTY_SETTINGS = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


async def _upload_all(
    cloud_settings: CloudSettings, rows: list[dict[str, Any]], batch_size: int
) -> tuple[UploadOutcome, list[list[dict[str, Any]]]]:
    bodies: list[list[dict[str, Any]]] = []

    def accept(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201)

    batched = cloud_settings.model_copy(
        update={"batch_size": batch_size, "max_concurrent_batches": 1}
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(accept)) as client:
        outcome = await BatchUploader(client, batched).upload(
            "cloud_violations",
            ("project_id", "local_id"),
            rows,
            tenant_id=TEST_TENANT_ID,
            project_id=TEST_PROJECT_ID,
            token=TEST_TOKEN,
        )
    return outcome, bodies


class TestBatchingProperties:
    @PROPERTY_SETTINGS
    @given(count=st.integers(min_value=0, max_value=60), batch_size=st.integers(1, 25))
    def test_batches_cover_every_row_exactly_once(
        self, cloud_settings: CloudSettings, count: int, batch_size: int
    ) -> None:
        rows = [{"local_id": i, "file": f"src/{i}.ts"} for i in range(count)]
        outcome, bodies = asyncio.run(_upload_all(cloud_settings, rows, batch_size))

        assert len(bodies) == math.ceil(count / batch_size)
        assert all(len(body) <= batch_size for body in bodies)
        assert outcome.rows_uploaded == count
        joined = sorted((row for body in bodies for row in body), key=lambda r: r["local_id"])
        assert joined == [
            {**row, "tenant_id": TEST_TENANT_ID, "project_id": TEST_PROJECT_ID} for row in rows
        ]
