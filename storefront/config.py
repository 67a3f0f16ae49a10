from functools import lru_cache
from typing import List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Storefront Booking Service")
    cors_origins: List[AnyHttpUrl] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ]
    )
    default_slot_capacity: int = Field(default=2, ge=0)
    slot_timezone: str = Field(default="Asia/Shanghai")
    atomic_reservations: bool = Field(
        default=True
    )
    enforce_consumption_balance: bool = Field(
        default=False
    )
    use_mock_data: bool = Field(
        default=True
    )
    ledger_service_base_url: AnyHttpUrl | None = Field(
        default=None
    )
    ledger_service_timeout: float = Field(
        default=10.0
    )
    ledger_service_token: str | None = Field(
        default=None
    )

    model_config = SettingsConfigDict(env_prefix="STOREFRONT_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
