"""Subset of the Telegram update payload the bot dispatches on."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    first_name: Optional[str] = None
    username: Optional[str] = None


class TelegramWebAppData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: str
    button_text: Optional[str] = None


class TelegramMessage(BaseModel):
    """Message fields used for commands, free text and Mini App data."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    date: int = 0
    chat: Dict[str, Any]
    from_: Optional[TelegramUser] = Field(None, alias="from")
    text: Optional[str] = None
    web_app_data: Optional[TelegramWebAppData] = None

    @property
    def chat_id(self) -> Any:
        return self.chat.get("id")


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    from_: TelegramUser = Field(..., alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class TelegramUpdate(BaseModel):
    """Inbound update; kinds other than message and callback are ignored."""

    model_config = ConfigDict(extra="allow")

    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


__all__ = [
    "TelegramCallbackQuery",
    "TelegramMessage",
    "TelegramUpdate",
    "TelegramUser",
    "TelegramWebAppData",
]
