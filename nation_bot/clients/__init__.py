"""External service clients."""

from .nation import NationAPIError, NationClient
from .telegram import (
    TELEGRAM_API_BASE,
    TRANSPORT_ERRORS,
    TelegramAPIError,
    TelegramBotClient,
)
from .user_store import SQLiteUserAuthStore

__all__ = [
    "NationAPIError",
    "NationClient",
    "SQLiteUserAuthStore",
    "TELEGRAM_API_BASE",
    "TRANSPORT_ERRORS",
    "TelegramAPIError",
    "TelegramBotClient",
]
