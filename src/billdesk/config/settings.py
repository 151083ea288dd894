"""Configuration settings for billdesk."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosted ledger backend
    ledger_api_url: str = Field(
        default="http://localhost:54321", validation_alias="LEDGER_API_URL"
    )
    ledger_api_key: SecretStr = Field(..., validation_alias="LEDGER_API_KEY")
    ledger_username: str = Field(..., validation_alias="LEDGER_USERNAME")
    ledger_password: SecretStr = Field(..., validation_alias="LEDGER_PASSWORD")
    ledger_timeout: float = Field(default=30.0, validation_alias="LEDGER_TIMEOUT")
    ledger_max_retries: int = Field(default=3, validation_alias="LEDGER_MAX_RETRIES")

    # Bulk payments
    payment_revalidate: bool = Field(default=True, validation_alias="PAYMENT_REVALIDATE")
    payment_sync_to_quickbooks: bool = Field(
        default=False, validation_alias="PAYMENT_SYNC_TO_QUICKBOOKS"
    )
    default_payment_method: str = Field(
        default="ACH", validation_alias="DEFAULT_PAYMENT_METHOD"
    )

    # Bulk edit: pause between bills so the event loop can serve other work
    edit_yield_seconds: float = Field(default=0.05, validation_alias="EDIT_YIELD_SECONDS")

    # WebSocket progress feed
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
