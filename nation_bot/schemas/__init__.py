"""Public schema exports."""

from .auth import AuthCallbackPayload, WebAppLoginData
from .telegram import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
    TelegramUser,
    TelegramWebAppData,
)
from .webhook import DriftEvaluation, HealthSnapshot, RegistrationResult, WebhookInfo

__all__ = [
    "AuthCallbackPayload",
    "DriftEvaluation",
    "HealthSnapshot",
    "RegistrationResult",
    "TelegramCallbackQuery",
    "TelegramMessage",
    "TelegramUpdate",
    "TelegramUser",
    "TelegramWebAppData",
    "WebAppLoginData",
    "WebhookInfo",
]
