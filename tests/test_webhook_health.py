try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio

import pytest

from nation_bot.clients.telegram import TelegramAPIError
from nation_bot.schemas import WebhookInfo
from nation_bot.services.webhook_health import (
    ALLOWED_UPDATES,
    WebhookHealthController,
    evaluate_drift,
    health_snapshot,
)
from nation_bot.utils.retry import RetryConfig

EXPECTED_URL = "https://bot.example.com/webhook"
NOW = 1_700_000_000.0

pytestmark = pytest.mark.anyio


class FakeTelegram:
    def __init__(self, *, failures: int = 0, registered_url: str | None = None) -> None:
        self.failures = failures
        self.registered_url = registered_url
        self.info = WebhookInfo()
        self.set_calls: list[dict] = []
        self.delete_calls = 0

    async def delete_webhook(self, *, drop_pending_updates: bool = False) -> bool:
        self.delete_calls += 1
        return True

    async def set_webhook(self, url: str, **kwargs) -> bool:
        self.set_calls.append({"url": url, **kwargs})
        if self.failures:
            self.failures -= 1
            raise TelegramAPIError("setWebhook", "Bad Request: bad webhook", 400)
        self.info = WebhookInfo(url=self.registered_url or url)
        return True

    async def get_webhook_info(self) -> WebhookInfo:
        return self.info


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _controller(telegram: FakeTelegram, sleep: RecordingSleep) -> WebhookHealthController:
    return WebhookHealthController(
        telegram,  # type: ignore[arg-type]
        secret_token="hook-secret",
        retry_config=RetryConfig(attempts=3, backoff_seconds=2.0),
        sleep=sleep,
        clock=lambda: NOW,
    )


def test_matching_registration_needs_no_reset() -> None:
    evaluation = evaluate_drift(WebhookInfo(url=EXPECTED_URL), EXPECTED_URL, now=NOW)

    assert not evaluation.needs_reset
    assert evaluation.reason is None


def test_url_mismatch_needs_reset() -> None:
    evaluation = evaluate_drift(WebhookInfo(url=""), EXPECTED_URL, now=NOW)

    assert evaluation.needs_reset
    assert evaluation.reason == "URL mismatch"


def test_recent_error_needs_reset_but_old_error_does_not() -> None:
    recent = WebhookInfo(url=EXPECTED_URL, last_error_date=int(NOW) - 100)
    old = WebhookInfo(url=EXPECTED_URL, last_error_date=int(NOW) - 400)

    assert evaluate_drift(recent, EXPECTED_URL, now=NOW).reason == "Recent errors detected"
    assert not evaluate_drift(old, EXPECTED_URL, now=NOW).needs_reset


def test_pending_backlog_reason_wins_over_earlier_matches() -> None:
    info = WebhookInfo(
        url="https://stale.example.com/webhook",
        last_error_date=int(NOW) - 10,
        pending_update_count=11,
    )

    evaluation = evaluate_drift(info, EXPECTED_URL, now=NOW)

    assert evaluation.needs_reset
    assert evaluation.reason == "Too many pending updates"


def test_backlog_at_threshold_is_tolerated() -> None:
    info = WebhookInfo(url=EXPECTED_URL, pending_update_count=10)

    assert not evaluate_drift(info, EXPECTED_URL, now=NOW).needs_reset


def test_health_snapshot_reflects_recent_errors() -> None:
    info = WebhookInfo(
        url=EXPECTED_URL,
        pending_update_count=3,
        last_error_date=int(NOW) - 60,
        last_error_message="Connection timed out",
    )

    snapshot = health_snapshot(info, now=NOW)

    assert snapshot.status == "unhealthy"
    assert snapshot.pending_updates == 3
    assert snapshot.last_error_message == "Connection timed out"
    assert health_snapshot(WebhookInfo(url=EXPECTED_URL), now=NOW).status == "healthy"


async def test_ensure_registered_deletes_waits_sets_and_verifies() -> None:
    telegram = FakeTelegram()
    sleep = RecordingSleep()

    result = await _controller(telegram, sleep).ensure_registered(EXPECTED_URL)

    assert result.success
    assert result.verified is True
    assert result.attempts == 1
    assert telegram.delete_calls == 1
    assert sleep.delays == [1.0]
    call = telegram.set_calls[0]
    assert call["url"] == EXPECTED_URL
    assert tuple(call["allowed_updates"]) == ALLOWED_UPDATES
    assert call["max_connections"] == 40
    assert call["secret_token"] == "hook-secret"


async def test_ensure_registered_reports_exhaustion() -> None:
    telegram = FakeTelegram(failures=3)
    sleep = RecordingSleep()

    result = await _controller(telegram, sleep).ensure_registered(EXPECTED_URL)

    assert not result.success
    assert result.attempts == 3
    assert "bad webhook" in (result.error or "")
    assert len(telegram.set_calls) == 3
    assert sleep.delays == [1.0, 2.0, 1.0, 4.0, 1.0]


async def test_ensure_registered_recovers_after_a_failure() -> None:
    telegram = FakeTelegram(failures=1)
    sleep = RecordingSleep()

    result = await _controller(telegram, sleep).ensure_registered(EXPECTED_URL)

    assert result.success
    assert result.attempts == 2
    assert sleep.delays == [1.0, 2.0, 1.0]


async def test_unverified_registration_is_still_a_success() -> None:
    telegram = FakeTelegram(registered_url="https://other.example.com/webhook")

    result = await _controller(telegram, RecordingSleep()).ensure_registered(EXPECTED_URL)

    assert result.success
    assert result.verified is False


async def test_auto_reset_reregisters_and_drops_backlog() -> None:
    telegram = FakeTelegram()
    telegram.info = WebhookInfo(url=EXPECTED_URL, pending_update_count=25)

    evaluation = await _controller(telegram, RecordingSleep()).auto_reset(EXPECTED_URL)

    assert evaluation.needs_reset
    assert evaluation.reason == "Too many pending updates"
    assert telegram.set_calls[-1]["drop_pending_updates"] is True


async def test_auto_reset_leaves_healthy_registration_alone() -> None:
    telegram = FakeTelegram()
    telegram.info = WebhookInfo(url=EXPECTED_URL)

    evaluation = await _controller(telegram, RecordingSleep()).auto_reset(EXPECTED_URL)

    assert not evaluation.needs_reset
    assert telegram.set_calls == []


class BlockingBackoffSleep(RecordingSleep):
    """Records delays and parks forever on the first retry backoff."""

    def __init__(self) -> None:
        super().__init__()
        self.parked = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        await super().__call__(delay)
        if len(self.delays) == 2:
            self.parked.set()
            await asyncio.Event().wait()


async def test_cancelling_during_backoff_abandons_pending_retries() -> None:
    telegram = FakeTelegram(failures=3)
    sleep = BlockingBackoffSleep()
    controller = _controller(telegram, sleep)

    task = asyncio.create_task(controller.ensure_registered(EXPECTED_URL))
    await sleep.parked.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert sleep.delays == [1.0, 2.0]
    assert len(telegram.set_calls) == 1
