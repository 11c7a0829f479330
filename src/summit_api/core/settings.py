from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./summit.db"
    database_echo: bool = False

    # HTTP server
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    # Internal API security (admin + automation callers)
    admin_api_key: str = ""

    # Pending pass claims
    claim_expiry_hours: int = 32
    claim_sweep_worker_enabled: bool = False
    claim_sweep_interval_seconds: int = 60 * 60
    claim_sweep_trigger_label: str = "scheduler"

    # Pass catalogue
    pass_currency: str = "INR"
    pass_code_prefix: str = "ESUMMIT-2026"

    # Ticketing provider
    ticketing_api_base_url: str = "https://api.ticketing.local"
    ticketing_api_key: str = ""
    ticketing_api_secret: str = ""
    ticketing_webhook_secret: str = ""
    ticketing_auto_sync: bool = True
    ticketing_timeout_seconds: float = 10.0
    ticketing_allowed_events: list[str] = Field(default_factory=list)

    @field_validator("ticketing_allowed_events", mode="before")
    @classmethod
    def _parse_event_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Identity provider
    identity_webhook_secret: str = ""

    # Tracing
    otel_exporter_otlp_endpoint: str = ""
    otel_exporter_otlp_headers: str = ""
    otel_console_export: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
