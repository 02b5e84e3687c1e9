"""Pull-mode delivery: long-poll getUpdates and dispatch each update."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from nation_bot.clients.telegram import TRANSPORT_ERRORS, TelegramBotClient
from nation_bot.schemas import TelegramUpdate
from nation_bot.services.bot_commands import BotUpdateHandler
from nation_bot.services.webhook_health import ALLOWED_UPDATES

logger = logging.getLogger(__name__)


class UpdatePoller:
    """Poll Telegram for updates and feed them to the bot handler."""

    def __init__(
        self,
        telegram: TelegramBotClient,
        handler: BotUpdateHandler,
        *,
        poll_timeout: int = 30,
        idle_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._telegram = telegram
        self._handler = handler
        self._poll_timeout = poll_timeout
        self._idle_seconds = idle_seconds
        self._sleep = sleep

    async def poll_once(self, offset: Optional[int] = None) -> Optional[int]:
        """Fetch one batch and return the offset to request next."""
        updates = await self._telegram.get_updates(
            offset=offset,
            timeout=self._poll_timeout,
            allowed_updates=ALLOWED_UPDATES,
        )
        next_offset = offset
        for raw in updates:
            update_id = raw.get("update_id")
            if isinstance(update_id, int):
                next_offset = update_id + 1
            try:
                update = TelegramUpdate.model_validate(raw)
            except ValidationError:
                logger.warning("Skipping malformed update %s", update_id)
                continue
            try:
                await self._handler.handle_update(update)
            except Exception:
                logger.exception("Error handling update %s", update_id)
        return next_offset

    async def run_forever(self) -> None:
        logger.info("Bot running in polling mode")
        offset: Optional[int] = None
        while True:
            try:
                offset = await self.poll_once(offset)
            except TRANSPORT_ERRORS as exc:
                logger.warning("Polling for updates failed: %s", exc)
                await self._sleep(self._idle_seconds)
            except Exception:
                logger.exception("Unexpected error while polling for updates")
                await self._sleep(self._idle_seconds)


__all__ = ["UpdatePoller"]
