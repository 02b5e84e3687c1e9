"""
Domain models for per-user authentication state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserAuthRecord(BaseModel):
    """Represents the auth record stored for one Telegram user."""

    user_key: str = Field(..., description="Telegram user identifier, as a string.")
    is_authenticated: bool = False
    provider_user_id: Optional[str] = Field(
        None, description="Privy user identifier set on successful login."
    )
    encrypted_credential: Optional[str] = Field(
        None, description="Cipher token of the bearer credential; never plaintext."
    )
    last_login: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class AuthCheckResult:
    """Outcome of an authentication check for a single user."""

    is_authenticated: bool
    has_valid_credential: bool
    record: Optional[UserAuthRecord] = None
    credential: Optional[str] = field(default=None, repr=False)

    @property
    def is_usable(self) -> bool:
        return self.is_authenticated and self.has_valid_credential

    @property
    def is_ghost(self) -> bool:
        """Authenticated flag set without a decryptable credential."""
        return self.is_authenticated and not self.has_valid_credential


UNAUTHENTICATED = AuthCheckResult(is_authenticated=False, has_valid_credential=False)


__all__ = ["AuthCheckResult", "UNAUTHENTICATED", "UserAuthRecord"]
