from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "job-lifecycle-api"
    environment: str = "dev"
    store_backend: Literal["memory", "postgres"] = "memory"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    cas_max_retries: int = 3
    bulk_worker_pool_size: int = 8
    notifier_webhook_url: str | None = None
    notifier_timeout_seconds: float = 5.0
    notifier_max_attempts: int = 3
    notifier_retry_base_seconds: float = 0.5
    notifier_retry_max_seconds: float = 10.0
    otel_enabled: bool = True
    otel_service_name: str = "job-lifecycle-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="LC_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
