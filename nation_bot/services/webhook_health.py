"""
Keep the Telegram webhook registration pointed at this service.

Registration is idempotent (delete, wait, set, verify) with bounded retry.
Drift evaluation and the health snapshot are pure functions of a
``WebhookInfo`` snapshot and the current time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from nation_bot.clients.telegram import TRANSPORT_ERRORS, TelegramBotClient
from nation_bot.schemas import (
    DriftEvaluation,
    HealthSnapshot,
    RegistrationResult,
    WebhookInfo,
)
from nation_bot.utils.retry import RetryConfig, run_with_retry

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ("message", "callback_query", "inline_query")
RECENT_ERROR_WINDOW_SECONDS = 300
PENDING_UPDATE_THRESHOLD = 10


def _has_recent_error(info: WebhookInfo, now: float) -> bool:
    if not info.last_error_date:
        return False
    return now - info.last_error_date < RECENT_ERROR_WINDOW_SECONDS


def evaluate_drift(
    info: WebhookInfo, expected_url: str, *, now: float
) -> DriftEvaluation:
    """Decide whether the registration needs a reset.

    Checks run in order (URL, recent errors, pending backlog); a later match
    replaces the reason of an earlier one.
    """
    reason: Optional[str] = None
    if info.url != expected_url:
        reason = "URL mismatch"
    if _has_recent_error(info, now):
        reason = "Recent errors detected"
    if info.pending_update_count > PENDING_UPDATE_THRESHOLD:
        reason = "Too many pending updates"
    return DriftEvaluation(needs_reset=reason is not None, reason=reason)


def health_snapshot(info: WebhookInfo, *, now: float) -> HealthSnapshot:
    return HealthSnapshot(
        status="unhealthy" if _has_recent_error(info, now) else "healthy",
        pending_updates=info.pending_update_count,
        last_error_timestamp=info.last_error_date,
        last_error_message=info.last_error_message,
    )


class WebhookHealthController:
    """Registers, inspects and self-heals the bot's webhook."""

    def __init__(
        self,
        telegram: TelegramBotClient,
        *,
        max_connections: int = 40,
        secret_token: Optional[str] = None,
        propagation_delay_seconds: float = 1.0,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._telegram = telegram
        self._max_connections = max_connections
        self._secret_token = secret_token
        self._propagation_delay = propagation_delay_seconds
        self._retry = retry_config or RetryConfig(attempts=3, backoff_seconds=2.0)
        self._sleep = sleep
        self._clock = clock

    async def fetch_info(self) -> WebhookInfo:
        return await self._telegram.get_webhook_info()

    async def register(self, url: str, *, drop_pending_updates: bool = False) -> bool:
        """Single setWebhook call with the service's registration options."""
        return await self._telegram.set_webhook(
            url,
            allowed_updates=ALLOWED_UPDATES,
            drop_pending_updates=drop_pending_updates,
            max_connections=self._max_connections,
            secret_token=self._secret_token,
        )

    async def ensure_registered(
        self, expected_url: str, *, drop_pending_updates: bool = False
    ) -> RegistrationResult:
        """Delete, wait, set and verify the webhook with bounded retry.

        Exhaustion is reported in the result rather than raised.
        """

        async def attempt_registration(attempt: int) -> bool:
            logger.info("Setting up webhook (attempt %s): %s", attempt, expected_url)
            try:
                await self._telegram.delete_webhook()
            except TRANSPORT_ERRORS as exc:
                logger.info("No existing webhook removed: %s", exc)
            await self._sleep(self._propagation_delay)
            await self.register(expected_url, drop_pending_updates=drop_pending_updates)
            return await self._verify(expected_url)

        outcome = await run_with_retry(
            attempt_registration,
            retry_config=self._retry,
            retry_on=TRANSPORT_ERRORS,
            sleep=self._sleep,
            label="Webhook setup",
        )
        if outcome.succeeded:
            logger.info("Webhook registered at %s", expected_url)
            return RegistrationResult(
                success=True,
                url=expected_url,
                attempts=outcome.attempts,
                verified=outcome.result,
            )

        logger.error(
            "All webhook setup attempts failed; the bot may fall back to polling"
        )
        return RegistrationResult(
            success=False,
            url=expected_url,
            attempts=outcome.attempts,
            error=str(outcome.error) if outcome.error else None,
        )

    async def _verify(self, expected_url: str) -> bool:
        try:
            info = await self.fetch_info()
        except TRANSPORT_ERRORS as exc:
            logger.warning("Could not verify webhook registration: %s", exc)
            return False
        if info.url != expected_url:
            logger.warning(
                "Webhook URL mismatch after setup: expected %s, got %s",
                expected_url,
                info.url or "<empty>",
            )
            return False
        return True

    def evaluate_drift(self, info: WebhookInfo, expected_url: str) -> DriftEvaluation:
        return evaluate_drift(info, expected_url, now=self._clock())

    def health_snapshot(self, info: WebhookInfo) -> HealthSnapshot:
        return health_snapshot(info, now=self._clock())

    async def auto_reset(self, expected_url: str) -> DriftEvaluation:
        """Re-register with the backlog dropped when drift is detected."""
        info = await self.fetch_info()
        evaluation = self.evaluate_drift(info, expected_url)
        if evaluation.needs_reset:
            logger.warning("Resetting webhook: %s", evaluation.reason)
            await self.register(expected_url, drop_pending_updates=True)
        return evaluation


__all__ = [
    "ALLOWED_UPDATES",
    "PENDING_UPDATE_THRESHOLD",
    "RECENT_ERROR_WINDOW_SECONDS",
    "WebhookHealthController",
    "evaluate_drift",
    "health_snapshot",
]
