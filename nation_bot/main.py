"""
FastAPI application entrypoint for the Nation Telegram bot.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nation_bot.api.routes import router as api_router
from nation_bot.clients.telegram import TRANSPORT_ERRORS
from nation_bot.core.config import AppSettings, get_settings
from nation_bot.core.logging import configure_logging
from nation_bot.dependencies import (
    get_bot_update_handler,
    get_telegram_client,
    get_webhook_health_controller,
)
from nation_bot.services import UpdatePoller

logger = logging.getLogger(__name__)


async def _register_webhook_after_delay(settings: AppSettings) -> None:
    await asyncio.sleep(settings.telegram.webhook_setup_delay_seconds)
    webhook_url = settings.telegram.webhook_url
    if not webhook_url:
        return
    result = await get_webhook_health_controller().ensure_registered(webhook_url)
    if not result.success:
        logger.error(
            "Webhook setup failed after %s attempts; register manually with "
            "POST /set-webhook or scripts/setup_webhook.py",
            result.attempts,
        )


async def _run_polling() -> None:
    telegram = get_telegram_client()
    try:
        await telegram.delete_webhook()
        logger.info("Webhook deleted, bot now running in polling mode")
    except TRANSPORT_ERRORS:
        logger.exception("Error deleting webhook before polling")
    await UpdatePoller(telegram, get_bot_update_handler()).run_forever()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start webhook registration or polling; cancel both on shutdown."""
    settings = get_settings()
    tasks: List[asyncio.Task] = []
    if settings.is_production and settings.telegram.webhook_url:
        tasks.append(asyncio.create_task(_register_webhook_after_delay(settings)))
    elif settings.telegram.use_polling:
        tasks.append(asyncio.create_task(_run_polling()))

    try:
        yield
    finally:
        logger.info("Shutting down, cancelling %s background task(s)", len(tasks))
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(
                    "Background task ended with an error",
                    exc_info=(type(result), result, result.__traceback__),
                )


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Nation Telegram Bot",
        version="0.1.0",
        description="Telegram bot with Privy authentication and Nation API access.",
        lifespan=lifespan,
    )
    # The Privy web app posts /auth/callback from the browser.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)
    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]


if __name__ == "__main__":  # pragma: no cover - manual execution path
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
