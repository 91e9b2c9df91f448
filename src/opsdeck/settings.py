"""
opsdeck.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (e.g., the profile encryption key).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OPSDECK_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "opsdeck"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./opsdeck.db"
    jobs_dir: Path = Path("./temp_jobs")

    # Fernet key for saved connection profiles. Empty means "derive from service name"
    # which is only acceptable for local development.
    secret_key: str = Field(default="", repr=False)

    # Oracle
    oracle_pool_min: int = 2
    oracle_pool_max: int = 10
    compare_batch_size: int = 10
    compare_data_max_rows: int = 20000
    compare_data_max_diffs: int = 1000
    backup_default_concurrency: int = 5
    backup_warn_concurrency: int = 10
    job_poll_interval: float = 1.0

    # OpenShift CLI
    oc_binary: str = "oc"
    oc_timeout_seconds: float = 120.0
    oc_read_max_bytes: int = 50 * 1024 * 1024
    debug_pod_image: str = "alpine:latest"
    debug_pod_ttl_seconds: int = 600

    # S3
    s3_default_region: str = "us-east-1"
    s3_verify_tls: bool = False
    s3_presign_ttl_seconds: int = 3600

    # Git hosts
    git_page_limit: int = 50
    git_verify_tls: bool = False
    git_timeout_seconds: float = 30.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Every tunable that the dashboards used to hard-code (pool sizes, batch size,
# presign TTL, page size) lives here so operators can adjust it per environment.
