"""Schemas related to the identity-provider login flow."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AuthCallbackPayload(BaseModel):
    """Notification sent by the Privy web app once a user finishes logging in."""

    model_config = ConfigDict(populate_by_name=True)

    telegram_user_id: Optional[Union[int, str]] = Field(
        None, alias="telegramUserId", description="Telegram user the login belongs to."
    )
    privy_user_id: Optional[str] = Field(None, alias="privyUserId")
    is_authenticated: bool = Field(False, alias="isAuthenticated")
    privy_access_token: Optional[str] = Field(
        None,
        alias="privyAccessToken",
        description="Bearer credential, raw or already encrypted by this service.",
    )


class WebAppLoginData(BaseModel):
    """Payload posted back by the Telegram Mini App after login."""

    type: str
    privy_user_id: Optional[str] = Field(None, alias="privyUserId")
    privy_access_token: Optional[str] = Field(None, alias="privyAccessToken")


__all__ = ["AuthCallbackPayload", "WebAppLoginData"]
