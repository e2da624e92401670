from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Telegram
    telegram_bot_token: str
    telegram_webhook_url: str = ""
    whitelisted_user_ids: Annotated[list[int], NoDecode] = []

    @field_validator("whitelisted_user_ids", mode="before")
    @classmethod
    def _split_user_ids(cls, value):
        """Accept the comma-separated form used in .env files."""
        if isinstance(value, str):
            return [int(part.strip()) for part in value.split(",") if part.strip()]
        return value

    # Database (optional, the order store runs degraded without it)
    database_url: str = ""

    @property
    def async_database_url(self) -> str:
        """Return database URL with asyncpg driver for SQLAlchemy async."""
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Gmail
    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_refresh_token: str = ""

    @property
    def gmail_configured(self) -> bool:
        return bool(
            self.gmail_client_id and self.gmail_client_secret and self.gmail_refresh_token
        )

    # Order email
    email_sender_filter: str = ""
    email_order_subject: str = "Water Delivery Order"
    email_order_body: str = "Please deliver water."

    # Reply monitor
    reply_check_interval_minutes: int = 2
    reminder_interval_hours: int = 24
    order_retention_hours: int = 0  # 0 = keep reminding until a reply arrives
    reply_monitor_mode: str = "taskiq"  # "taskiq" | "inprocess"
    reply_lock_ttl_seconds: int = 600

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    rate_limit_per_minute: int = 30

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


settings = Settings()
