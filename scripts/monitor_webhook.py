"""Probe the deployed bot's health endpoint and trigger an auto-reset when needed.

Meant to run periodically from cron or an external scheduler::

    python -m scripts.monitor_webhook --server-url https://bot.example.com
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from nation_bot.core.config import get_settings

EXIT_OK = 0
EXIT_RESET_FAILED = 1
EXIT_CONFIG_ERROR = 2


async def _get_health(client: httpx.AsyncClient) -> dict[str, Any]:
    response = await client.get("/health")
    return response.json()


async def _trigger_auto_reset(client: httpx.AsyncClient) -> dict[str, Any]:
    response = await client.post("/auto-reset-webhook")
    response.raise_for_status()
    return response.json()


def _print_health(health: dict[str, Any]) -> None:
    print(f"Server status: {health.get('status')}")
    if health.get("uptime") is not None:
        print(f"Uptime: {int(health['uptime'])} seconds")
    webhook = health.get("webhook") or {}
    if webhook:
        print(f"Webhook URL: {webhook.get('url')}")
        print(f"Pending updates: {webhook.get('pending_updates')}")
        if webhook.get("last_error_date"):
            print(f"Last error: {webhook['last_error_date']}")
            print(f"Error message: {webhook.get('last_error_message')}")


async def monitor(
    server_url: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Check health once; reset when unhealthy or when the check itself fails."""
    print(f"Monitoring {server_url} at {datetime.now(timezone.utc).isoformat()}")
    async with httpx.AsyncClient(
        base_url=server_url, timeout=15.0, transport=transport
    ) as client:
        try:
            health = await _get_health(client)
        except (httpx.HTTPError, ValueError) as exc:
            print(f"Health check failed: {exc}", file=sys.stderr)
            print("Attempting direct webhook reset...")
            try:
                result = await _trigger_auto_reset(client)
            except (httpx.HTTPError, ValueError) as reset_exc:
                print(f"Direct reset failed: {reset_exc}", file=sys.stderr)
                print("Manual intervention may be required: python -m scripts.setup_webhook set")
                return EXIT_RESET_FAILED
            print(f"Direct reset result: {result.get('message')}")
            return EXIT_OK

        _print_health(health)
        if health.get("status") != "unhealthy":
            print("Webhook is healthy.")
            return EXIT_OK

        print("Server is unhealthy, attempting auto-reset...")
        try:
            result = await _trigger_auto_reset(client)
        except (httpx.HTTPError, ValueError) as exc:
            print(f"Auto-reset failed: {exc}", file=sys.stderr)
            return EXIT_RESET_FAILED
        if result.get("reset"):
            print(f"Webhook reset: {result.get('reason')}")
        else:
            print("No reset needed.")
        return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Check the bot's webhook health and reset it when unhealthy."
    )
    parser.add_argument(
        "--server-url",
        default=None,
        help="Base URL of the deployed bot (default: WEBHOOK_BASE_URL).",
    )
    args = parser.parse_args(argv)

    server_url = args.server_url
    if not server_url:
        base = get_settings().telegram.webhook_base_url
        server_url = str(base).rstrip("/") if base else None
    if not server_url:
        print("Provide --server-url or set WEBHOOK_BASE_URL.", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    return asyncio.run(monitor(server_url))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
