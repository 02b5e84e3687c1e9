"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_auth_state_machine,
    get_bot_update_handler,
    get_conversation_state_store,
    get_nation_client,
    get_telegram_client,
    get_token_cipher,
    get_user_store,
    get_webhook_health_controller,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
    "get_auth_state_machine",
    "get_bot_update_handler",
    "get_conversation_state_store",
    "get_nation_client",
    "get_telegram_client",
    "get_token_cipher",
    "get_user_store",
    "get_webhook_health_controller",
]
