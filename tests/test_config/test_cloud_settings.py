"""Tests for cloud sync configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from drift_cloud.config import BATCH_SIZE, CloudSettings

if TYPE_CHECKING:
    from pathlib import Path


class TestServerUrl:
    def test_rejects_insecure_http_for_remote_hosts(self) -> None:
        s = CloudSettings(_env_file=None, supabase_url="http://example.com")
        assert "HTTPS" in (s.server_url_problem() or "")

    def test_allows_https_for_remote_hosts(self) -> None:
        s = CloudSettings(_env_file=None, supabase_url="https://example.supabase.co/")
        assert s.server_url_problem() is None
        assert s.supabase_url == "https://example.supabase.co"

    @pytest.mark.parametrize("host", ["localhost:54321", "127.0.0.1", "[::1]:54321"])
    def test_allows_http_for_loopback(self, host: str) -> None:
        s = CloudSettings(_env_file=None, supabase_url=f"http://{host}")
        assert s.server_url_problem() is None

    def test_allows_insecure_http_when_flag_enabled(self) -> None:
        s = CloudSettings(
            _env_file=None, supabase_url="http://example.com:8000", allow_insecure_http=True
        )
        assert s.server_url_problem() is None

    def test_rejects_missing_scheme(self) -> None:
        s = CloudSettings(_env_file=None, supabase_url="example.com")
        assert "scheme and host" in (s.server_url_problem() or "")


class TestCloudSettings:
    def test_default_settings(self) -> None:
        s = CloudSettings(_env_file=None)
        assert s.batch_size == BATCH_SIZE == 1000
        assert s.upload_max_attempts == 1
        assert s.push_timeout_seconds is None
        assert s.rest_url == "http://localhost:54321/rest/v1"

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DRIFT_CLOUD_TENANT_ID", "tenant-from-env")
        monkeypatch.setenv("DRIFT_CLOUD_BATCH_SIZE", "250")
        s = CloudSettings(_env_file=None)
        assert s.tenant_id == "tenant-from-env"
        assert s.batch_size == 250

    def test_rejects_zero_batch_size(self) -> None:
        with pytest.raises(ValidationError):
            CloudSettings(_env_file=None, batch_size=0)

    def test_root_path_is_absolute(self, tmp_path: Path) -> None:
        s = CloudSettings(_env_file=None, project_root=tmp_path)
        assert s.root_path == str(tmp_path.resolve())

    def test_validate_runtime_requires_identity(self) -> None:
        s = CloudSettings(_env_file=None)
        with pytest.raises(ValueError, match="TENANT_ID.*PROJECT_ID"):
            s.validate_runtime()

    def test_validate_runtime_rejects_insecure_url(self) -> None:
        s = CloudSettings(
            _env_file=None,
            supabase_url="http://cloud.example.com",
            tenant_id="t",
            project_id="p",
        )
        with pytest.raises(ValueError, match="must use HTTPS"):
            s.validate_runtime()

    def test_validate_runtime_accepts_complete_settings(self, cloud_settings: CloudSettings) -> None:
        cloud_settings.validate_runtime()
