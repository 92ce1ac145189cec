from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    service_name: str = "campus-points-api"
    database_url: str = "sqlite+aiosqlite:///./campus_points.db"
    database_echo: bool = False

    # Accrual: one point per $0.25 spent
    points_per_dollar: int = Field(default=4, gt=0)

    # Transaction listing
    default_page_size: int = Field(default=10, gt=0)
    max_page_size: int = Field(default=100, gt=0)

    # Operator surfaces (observability snapshots)
    operator_api_key: str = ""

    # Log sink
    log_level: str = "INFO"
    log_json: bool = True

    # Print spans to stdout when no OTLP endpoint is configured
    otel_console_exporter: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> str:
        if value is None:
            return "INFO"
        return str(value).strip().upper() or "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
