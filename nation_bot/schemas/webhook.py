"""
Pydantic models describing the Telegram webhook registration and its health.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookInfo(BaseModel):
    """Snapshot returned by Telegram's getWebhookInfo."""

    model_config = ConfigDict(extra="allow")

    url: str = Field("", description="Registered URL; empty when no webhook is set.")
    has_custom_certificate: bool = False
    pending_update_count: int = Field(0, description="Updates awaiting delivery.")
    ip_address: Optional[str] = None
    last_error_date: Optional[int] = Field(
        None, description="Unix time of the most recent delivery error."
    )
    last_error_message: Optional[str] = None
    last_synchronization_error_date: Optional[int] = None
    max_connections: Optional[int] = None
    allowed_updates: Optional[list[str]] = None

    @property
    def last_error_at(self) -> Optional[datetime]:
        if not self.last_error_date:
            return None
        return datetime.fromtimestamp(self.last_error_date, tz=timezone.utc)


class DriftEvaluation(BaseModel):
    """Decision on whether the registration must be reset."""

    needs_reset: bool
    reason: Optional[str] = None


class HealthSnapshot(BaseModel):
    """Health view derived from a registration snapshot and the current time."""

    status: Literal["healthy", "unhealthy"]
    pending_updates: int = 0
    last_error_timestamp: Optional[int] = None
    last_error_message: Optional[str] = None


class RegistrationResult(BaseModel):
    """Outcome of an idempotent webhook registration run."""

    success: bool
    url: str
    attempts: int
    verified: Optional[bool] = Field(
        None, description="Whether the re-read URL matched; None when never registered."
    )
    error: Optional[str] = None


__all__ = ["DriftEvaluation", "HealthSnapshot", "RegistrationResult", "WebhookInfo"]
