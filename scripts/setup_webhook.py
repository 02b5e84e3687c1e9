"""Manage the bot's Telegram webhook registration from the command line.

Example usages::

    # Register <WEBHOOK_BASE_URL>/webhook (delete, wait, set, verify).
    python -m scripts.setup_webhook set

    # Print the current registration, or remove it.
    python -m scripts.setup_webhook info
    python -m scripts.setup_webhook delete

    # POST a synthetic /start update to the deployed endpoint.
    python -m scripts.setup_webhook test
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from nation_bot.clients.telegram import TRANSPORT_ERRORS, TelegramBotClient
from nation_bot.core.config import AppSettings, get_settings
from nation_bot.schemas import WebhookInfo
from nation_bot.services.webhook_health import WebhookHealthController
from nation_bot.utils.retry import RetryConfig

EXIT_OK = 0
EXIT_FAILURE = 1

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _format_timestamp(value: Optional[int]) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def format_webhook_info(info: WebhookInfo) -> str:
    lines = [
        f"  URL: {info.url or 'Not set'}",
        f"  Has custom certificate: {info.has_custom_certificate}",
        f"  Pending update count: {info.pending_update_count}",
        f"  Max connections: {info.max_connections or 'Default (40)'}",
    ]
    if info.ip_address:
        lines.append(f"  IP address: {info.ip_address}")
    if info.last_error_date:
        lines.append(f"  Last error date: {_format_timestamp(info.last_error_date)}")
        lines.append(f"  Last error message: {info.last_error_message}")
    if info.last_synchronization_error_date:
        lines.append(
            f"  Last sync error date: {_format_timestamp(info.last_synchronization_error_date)}"
        )
    return "\n".join(lines)


def _sample_update() -> dict[str, Any]:
    return {
        "update_id": 1,
        "message": {
            "message_id": 1,
            "date": int(time.time()),
            "chat": {"id": 1, "type": "private"},
            "from": {"id": 1, "is_bot": False, "first_name": "Test"},
            "text": "/start",
        },
    }


async def test_endpoint(
    webhook_url: str,
    *,
    secret_token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """POST a synthetic update and report whether the endpoint answered 200."""
    headers = {SECRET_TOKEN_HEADER: secret_token} if secret_token else {}
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.post(webhook_url, json=_sample_update(), headers=headers)
    except httpx.HTTPError as exc:
        print(f"Webhook endpoint test failed: {exc}", file=sys.stderr)
        return False
    if response.status_code != 200:
        print(
            f"Webhook endpoint responded with status {response.status_code}: {response.text}",
            file=sys.stderr,
        )
        return False
    print("Webhook endpoint is responding correctly.")
    return True


async def run(
    command: str,
    *,
    settings: AppSettings,
    telegram: TelegramBotClient,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    webhook_url = settings.telegram.webhook_url
    if command in {"set", "test"} and not webhook_url:
        print("WEBHOOK_BASE_URL must be set for this command.", file=sys.stderr)
        return EXIT_FAILURE

    if command == "info":
        info = await telegram.get_webhook_info()
        print("Webhook information:")
        print(format_webhook_info(info))
        return EXIT_OK

    if command == "delete":
        await telegram.delete_webhook()
        print("Webhook deleted.")
        return EXIT_OK

    if command == "test":
        ready = await test_endpoint(
            webhook_url, secret_token=settings.telegram.webhook_secret, transport=transport
        )
        return EXIT_OK if ready else EXIT_FAILURE

    controller = WebhookHealthController(
        telegram,
        max_connections=settings.telegram.webhook_max_connections,
        secret_token=settings.telegram.webhook_secret,
        retry_config=RetryConfig(attempts=settings.telegram.webhook_setup_attempts),
    )
    print(f"Setting webhook to {webhook_url}")
    result = await controller.ensure_registered(webhook_url)
    if not result.success:
        print(
            f"Failed to set webhook after {result.attempts} attempts: {result.error}",
            file=sys.stderr,
        )
        return EXIT_FAILURE
    if not result.verified:
        print("Warning: webhook was set but the registered URL did not match.")
    print("Webhook set successfully.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Set, inspect, delete or test the Telegram webhook."
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="set",
        choices=["set", "info", "delete", "test"],
        help="Operation to perform (default: set).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    telegram = TelegramBotClient(settings.telegram.bot_token)
    try:
        return asyncio.run(run(args.command, settings=settings, telegram=telegram))
    except TRANSPORT_ERRORS as exc:
        print(f"Operation failed: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
