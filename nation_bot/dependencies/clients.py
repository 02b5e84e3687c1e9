"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from nation_bot.clients import NationClient, SQLiteUserAuthStore, TelegramBotClient
from nation_bot.core.config import get_settings
from nation_bot.services import (
    AuthenticationStateMachine,
    BotUpdateHandler,
    ConversationStateStore,
    CredentialCipher,
    WebhookHealthController,
)
from nation_bot.utils.retry import RetryConfig


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_token_cipher() -> CredentialCipher:
    """Provide the process-wide credential cipher."""
    settings = _settings()
    return CredentialCipher(secret=settings.security.token_encryption_secret)


@lru_cache()
def get_user_store() -> SQLiteUserAuthStore:
    """Provide shared SQLite auth record store."""
    settings = _settings()
    return SQLiteUserAuthStore(settings.user_store_path)


@lru_cache()
def get_auth_state_machine() -> AuthenticationStateMachine:
    return AuthenticationStateMachine(
        store=get_user_store(),
        cipher=get_token_cipher(),
    )


@lru_cache()
def get_telegram_client() -> TelegramBotClient:
    """Provide the Bot API client for the configured token."""
    settings = _settings()
    return TelegramBotClient(settings.telegram.bot_token)


@lru_cache()
def get_nation_client() -> NationClient:
    settings = _settings()
    return NationClient(
        str(settings.nation.api_base_url),
        timeout=settings.nation.timeout_seconds,
    )


@lru_cache()
def get_webhook_health_controller() -> WebhookHealthController:
    """Build the webhook controller with the configured registration options."""
    settings = _settings()
    return WebhookHealthController(
        get_telegram_client(),
        max_connections=settings.telegram.webhook_max_connections,
        secret_token=settings.telegram.webhook_secret,
        retry_config=RetryConfig(attempts=settings.telegram.webhook_setup_attempts),
    )


@lru_cache()
def get_conversation_state_store() -> ConversationStateStore:
    """Provide a process-local conversation state store."""
    settings = _settings()
    return ConversationStateStore(ttl_seconds=settings.conversation_state_ttl_seconds)


@lru_cache()
def get_bot_update_handler() -> BotUpdateHandler:
    settings = _settings()
    web_app_url = settings.telegram.web_app_url
    return BotUpdateHandler(
        telegram=get_telegram_client(),
        auth=get_auth_state_machine(),
        nation=get_nation_client(),
        conversation_state=get_conversation_state_store(),
        web_app_url=str(web_app_url) if web_app_url else None,
    )


__all__ = [
    "get_auth_state_machine",
    "get_bot_update_handler",
    "get_conversation_state_store",
    "get_nation_client",
    "get_telegram_client",
    "get_token_cipher",
    "get_user_store",
    "get_webhook_health_controller",
]
