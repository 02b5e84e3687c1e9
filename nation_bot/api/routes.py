"""
FastAPI routes for the Nation Telegram bot.
"""

from __future__ import annotations

import hmac
import logging
import time
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from nation_bot.clients.telegram import TRANSPORT_ERRORS
from nation_bot.core.config import AppSettings
from nation_bot.dependencies import (
    get_app_settings,
    get_auth_state_machine,
    get_bot_update_handler,
    get_webhook_health_controller,
)
from nation_bot.schemas import AuthCallbackPayload, TelegramUpdate
from nation_bot.services.token_cipher import EncryptionError

router = APIRouter()
logger = logging.getLogger(__name__)

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"
# Failures when reading webhook info: transport or an unexpected getWebhookInfo shape.
WEBHOOK_INFO_ERRORS = (*TRANSPORT_ERRORS, ValidationError)

_PROCESS_STARTED_AT = time.monotonic()


def _uptime() -> float:
    return round(time.monotonic() - _PROCESS_STARTED_AT, 3)


def _isoformat(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _error(status: HTTPStatus, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _expected_webhook_url(request: Request, settings: AppSettings) -> str:
    """Configured webhook URL, else one derived from the request host."""
    configured = settings.telegram.webhook_url
    if configured:
        return configured
    host = request.headers.get("host") or request.url.netloc
    return f"https://{host}/webhook"


async def _json_object(request: Request) -> Optional[dict]:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@router.get("/", response_class=PlainTextResponse)
async def home() -> str:
    return "Telegram Bot Server is running!"


@router.get("/keep-alive", status_code=HTTPStatus.OK)
async def keep_alive() -> dict:
    """Trivial liveness probe for external pingers."""
    return {"status": "alive", "timestamp": _isoformat(), "uptime": _uptime()}


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(
    controller: Annotated[Any, Depends(get_webhook_health_controller)],
) -> Any:
    """Report webhook health derived from the current registration."""
    try:
        info = await controller.fetch_info()
    except WEBHOOK_INFO_ERRORS as exc:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"status": "error", "timestamp": _isoformat(), "error": str(exc)},
        )

    snapshot = controller.health_snapshot(info)
    last_error_at = info.last_error_at
    return {
        "status": snapshot.status,
        "timestamp": _isoformat(),
        "uptime": _uptime(),
        "webhook": {
            "url": info.url or "Not set",
            "pending_updates": snapshot.pending_updates,
            "last_error_date": _isoformat(last_error_at) if last_error_at else None,
            "last_error_message": snapshot.last_error_message,
        },
    }


@router.post("/webhook", status_code=HTTPStatus.OK)
async def telegram_webhook(
    request: Request,
    handler: Annotated[Any, Depends(get_bot_update_handler)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Any:
    """Receive one Telegram update and dispatch it."""
    secret = settings.telegram.webhook_secret
    if secret:
        supplied = request.headers.get(SECRET_TOKEN_HEADER, "")
        if not hmac.compare_digest(supplied.encode(), secret.encode()):
            logger.warning("Rejected webhook call with an invalid secret token")
            return _error(HTTPStatus.FORBIDDEN, "Forbidden")

    body = await _json_object(request)
    if not body:
        logger.warning("Invalid webhook data received")
        return _error(HTTPStatus.BAD_REQUEST, "Invalid webhook data")

    try:
        update = TelegramUpdate.model_validate(body)
    except ValidationError:
        logger.warning("Webhook body is not a Telegram update")
        return _error(HTTPStatus.BAD_REQUEST, "Invalid webhook data")

    try:
        await handler.handle_update(update)
    except Exception:
        logger.exception("Webhook processing error for update %s", update.update_id)
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error")

    return {"status": "ok", "timestamp": int(time.time() * 1000)}


@router.get("/webhook-status", status_code=HTTPStatus.OK)
async def webhook_status(
    controller: Annotated[Any, Depends(get_webhook_health_controller)],
) -> Any:
    try:
        info = await controller.fetch_info()
    except WEBHOOK_INFO_ERRORS:
        logger.exception("Error getting webhook info")
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to get webhook info")
    return {"success": True, "webhook_info": info.model_dump()}


@router.post("/set-webhook", status_code=HTTPStatus.OK)
async def set_webhook(
    request: Request,
    controller: Annotated[Any, Depends(get_webhook_health_controller)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Any:
    """Force a registration at the expected URL."""
    webhook_url = _expected_webhook_url(request, settings)
    try:
        await controller.register(webhook_url)
    except TRANSPORT_ERRORS:
        logger.exception("Error setting webhook")
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to set webhook")

    logger.info("Webhook set to %s", webhook_url)
    return {"success": True, "message": f"Webhook set to {webhook_url}"}


@router.post("/auto-reset-webhook", status_code=HTTPStatus.OK)
async def auto_reset_webhook(
    request: Request,
    controller: Annotated[Any, Depends(get_webhook_health_controller)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Any:
    """Reset the registration when it has drifted."""
    webhook_url = _expected_webhook_url(request, settings)
    try:
        evaluation = await controller.auto_reset(webhook_url)
    except WEBHOOK_INFO_ERRORS:
        logger.exception("Error in auto-reset")
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to check/reset webhook")

    if evaluation.needs_reset:
        return {
            "success": True,
            "reset": True,
            "reason": evaluation.reason,
            "message": f"Webhook reset to {webhook_url}",
        }
    return {
        "success": True,
        "reset": False,
        "message": "Webhook is healthy, no reset needed",
    }


@router.post("/auth/callback", status_code=HTTPStatus.OK)
async def auth_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    auth: Annotated[Any, Depends(get_auth_state_machine)],
    handler: Annotated[Any, Depends(get_bot_update_handler)],
) -> Any:
    """Record the outcome of a Privy login for a Telegram user."""
    body = await _json_object(request)
    if body is None:
        return _error(HTTPStatus.BAD_REQUEST, "Invalid request body")
    try:
        payload = AuthCallbackPayload.model_validate(body)
    except ValidationError:
        return _error(HTTPStatus.BAD_REQUEST, "Invalid request body")

    if payload.telegram_user_id in (None, ""):
        return _error(HTTPStatus.BAD_REQUEST, "telegramUserId is required")

    user_key = str(payload.telegram_user_id)
    try:
        auth.record_callback(
            user_key,
            provider_user_id=payload.privy_user_id,
            is_authenticated=payload.is_authenticated,
            credential=payload.privy_access_token,
        )
    except EncryptionError:
        logger.warning("Failed to process access token for user %s", user_key)
        return _error(HTTPStatus.BAD_REQUEST, "Failed to process access token")
    except Exception:
        logger.exception("Error in auth callback for user %s", user_key)
        return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error")

    if payload.is_authenticated:
        background_tasks.add_task(handler.notify_login_success, payload.telegram_user_id)

    return {"success": True, "message": "Authentication status updated"}


__all__ = ["router"]
