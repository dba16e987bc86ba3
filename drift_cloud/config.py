"""Cloud sync configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BATCH_SIZE = 1000
REST_PATH = "/rest/v1"

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class CloudSettings(BaseSettings):
    """Drift cloud sync settings."""

    model_config = SettingsConfigDict(
        env_prefix="DRIFT_CLOUD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Endpoint
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    allow_insecure_http: bool = False

    # Identity
    tenant_id: str = ""
    project_id: str = ""

    # Paths
    project_root: Path = Path(".")

    # Upload
    batch_size: int = Field(default=BATCH_SIZE, ge=1)
    max_concurrent_tables: int = Field(default=4, ge=1)
    max_concurrent_batches: int = Field(default=4, ge=1)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    push_timeout_seconds: float | None = Field(default=None, gt=0)

    # Retry (1 attempt means retry is left to the caller's next push)
    upload_max_attempts: int = Field(default=1, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)

    @field_validator("supabase_url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def rest_url(self) -> str:
        """Base URL of the PostgREST API."""
        return f"{self.supabase_url}{REST_PATH}"

    @property
    def root_path(self) -> str:
        """Project root as an absolute path string, used for path redaction."""
        return str(self.project_root.expanduser().resolve())

    def server_url_problem(self) -> str | None:
        """Describe what is wrong with ``supabase_url``, or return None.

        Plain http is only accepted for loopback hosts unless
        ``allow_insecure_http`` is set.
        """
        parsed = urlparse(self.supabase_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            return "SUPABASE_URL must include scheme and host (e.g. https://example.supabase.co)"
        if parsed.scheme == "https" or self.allow_insecure_http:
            return None
        if parsed.hostname in _LOCALHOST_HOSTS:
            return None
        return (
            "SUPABASE_URL must use HTTPS for non-localhost hosts. "
            "Set DRIFT_CLOUD_ALLOW_INSECURE_HTTP only on trusted networks."
        )

    def validate_runtime(self) -> None:
        """Validate settings that must be present before pushing."""
        violations: list[str] = []
        url_problem = self.server_url_problem()
        if url_problem is not None:
            violations.append(url_problem)
        if not self.tenant_id.strip():
            violations.append("TENANT_ID must be configured")
        if not self.project_id.strip():
            violations.append("PROJECT_ID must be configured")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Incomplete cloud configuration: {joined}")
