"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the polling loop and the
operational scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class TelegramSettings(BaseSettings):
    """Bot transport configuration."""

    bot_token: str = Field(..., validation_alias="TELEGRAM_BOT_TOKEN")
    webhook_base_url: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="WEBHOOK_BASE_URL",
        description="Public base URL; the webhook is registered at <base>/webhook.",
    )
    use_polling: bool = Field(
        False,
        validation_alias="USE_POLLING",
        description="Pull updates with getUpdates instead of webhook delivery.",
    )
    webhook_secret: Optional[str] = Field(
        None,
        validation_alias="WEBHOOK_SECRET",
        description="Shared secret Telegram echoes in X-Telegram-Bot-Api-Secret-Token.",
    )
    web_app_url: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="WEB_APP_URL",
        description="Base URL of the Privy login web app.",
    )
    webhook_max_connections: int = Field(40, validation_alias="WEBHOOK_MAX_CONNECTIONS")
    webhook_setup_delay_seconds: float = Field(5.0, validation_alias="WEBHOOK_SETUP_DELAY")
    webhook_setup_attempts: int = Field(3, validation_alias="WEBHOOK_SETUP_ATTEMPTS")

    @field_validator("webhook_secret", mode="before")
    @classmethod
    def _blank_secret_is_none(cls, value: Optional[str]) -> Optional[str]:
        """Treat an empty WEBHOOK_SECRET as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.webhook_base_url:
            return None
        return f"{str(self.webhook_base_url).rstrip('/')}/webhook"


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class NationSettings(BaseSettings):
    """Remote account/agent API configuration."""

    api_base_url: AnyHttpUrl = Field(
        "https://nation.service.crestal.dev",
        validation_alias="NATION_API_BASE_URL",
    )
    timeout_seconds: float = Field(10.0, validation_alias="NATION_API_TIMEOUT")


class AppSettings(BaseSettings):
    """Root settings object for the bot service."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    port: int = Field(3001, validation_alias="PORT")
    user_store_path: str = Field(
        "data/users.db",
        validation_alias="USER_STORE_PATH",
        description="SQLite file holding one auth record per Telegram user.",
    )
    conversation_state_ttl_seconds: int = Field(
        900, validation_alias="CONVERSATION_STATE_TTL"
    )
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    nation: NationSettings = Field(default_factory=NationSettings)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "NationSettings",
    "SecuritySettings",
    "TelegramSettings",
    "get_settings",
]
