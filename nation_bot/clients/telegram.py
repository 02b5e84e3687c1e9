"""
Telegram Bot API client.

Thin async wrapper over the HTTP Bot API covering outbound messages and the
webhook registration lifecycle.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from nation_bot.schemas import WebhookInfo

TELEGRAM_API_BASE = "https://api.telegram.org"

ChatId = Union[int, str]


class TelegramAPIError(Exception):
    """Raised when the Bot API answers with ``ok: false``."""

    def __init__(
        self, method: str, description: str, error_code: Optional[int] = None
    ) -> None:
        super().__init__(f"{method} failed: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


TRANSPORT_ERRORS = (TelegramAPIError, httpx.HTTPError)


class TelegramBotClient:
    """Call Bot API methods for a single bot token."""

    def __init__(
        self,
        bot_token: str,
        *,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not bot_token:
            raise ValueError("Telegram bot token must be provided.")
        self._base_url = f"{api_base.rstrip('/')}/bot{bot_token}"
        self._timeout = timeout
        self._transport = transport

    async def _call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        async with httpx.AsyncClient(
            timeout=timeout or self._timeout, transport=self._transport
        ) as client:
            response = await client.post(f"{self._base_url}/{method}", json=payload or {})

        try:
            body = response.json()
        except ValueError as exc:
            raise TelegramAPIError(
                method, f"Non-JSON response (HTTP {response.status_code})"
            ) from exc

        if not body.get("ok"):
            raise TelegramAPIError(
                method,
                body.get("description") or "API request failed",
                body.get("error_code"),
            )
        return body.get("result")

    async def send_message(
        self,
        chat_id: ChatId,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id: ChatId,
        message_id: int,
        text: str,
    ) -> Any:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
        }
        return await self._call("editMessageText", payload)

    async def answer_callback_query(
        self,
        callback_query_id: str,
        *,
        text: Optional[str] = None,
        show_alert: bool = False,
    ) -> bool:
        payload: Dict[str, Any] = {
            "callback_query_id": callback_query_id,
            "show_alert": show_alert,
        }
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload)

    async def get_webhook_info(self) -> WebhookInfo:
        result = await self._call("getWebhookInfo")
        return WebhookInfo.model_validate(result or {})

    async def set_webhook(
        self,
        url: str,
        *,
        allowed_updates: Sequence[str],
        drop_pending_updates: bool = False,
        max_connections: Optional[int] = None,
        secret_token: Optional[str] = None,
    ) -> bool:
        payload: Dict[str, Any] = {
            "url": url,
            "allowed_updates": list(allowed_updates),
            "drop_pending_updates": drop_pending_updates,
        }
        if max_connections:
            payload["max_connections"] = max_connections
        if secret_token:
            payload["secret_token"] = secret_token
        return await self._call("setWebhook", payload)

    async def delete_webhook(self, *, drop_pending_updates: bool = False) -> bool:
        return await self._call(
            "deleteWebhook", {"drop_pending_updates": drop_pending_updates}
        )

    async def get_updates(
        self,
        *,
        offset: Optional[int] = None,
        timeout: int = 30,
        allowed_updates: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Long-poll for updates; the HTTP timeout outlasts the poll window."""
        payload: Dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            payload["offset"] = offset
        if allowed_updates:
            payload["allowed_updates"] = list(allowed_updates)
        result = await self._call("getUpdates", payload, timeout=timeout + 10.0)
        return list(result or [])


__all__ = [
    "TELEGRAM_API_BASE",
    "TRANSPORT_ERRORS",
    "TelegramAPIError",
    "TelegramBotClient",
]
