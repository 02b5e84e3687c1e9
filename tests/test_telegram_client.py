try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json

import httpx
import pytest

from nation_bot.clients.telegram import TelegramAPIError, TelegramBotClient

pytestmark = pytest.mark.anyio


def _client(handler) -> TelegramBotClient:
    return TelegramBotClient(
        "123:abc",
        api_base="https://telegram.example.com",
        transport=httpx.MockTransport(handler),
    )


async def test_send_message_posts_to_bot_method() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

    markup = {"inline_keyboard": [[{"text": "Help", "callback_data": "show_help"}]]}
    result = await _client(handler).send_message(42, "hello", reply_markup=markup)

    assert result == {"message_id": 7}
    request = seen[0]
    assert request.url.path == "/bot123:abc/sendMessage"
    assert json.loads(request.content) == {
        "chat_id": 42,
        "text": "hello",
        "reply_markup": markup,
    }


async def test_api_failure_raises_with_description() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"ok": False, "error_code": 400, "description": "Bad Request: chat not found"},
        )

    with pytest.raises(TelegramAPIError) as excinfo:
        await _client(handler).send_message(1, "hi")

    assert excinfo.value.method == "sendMessage"
    assert excinfo.value.error_code == 400
    assert "chat not found" in excinfo.value.description


async def test_non_json_response_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="<html>Bad gateway</html>")

    with pytest.raises(TelegramAPIError):
        await _client(handler).delete_webhook()


async def test_get_webhook_info_parses_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "ok": True,
                "result": {
                    "url": "https://bot.example.com/webhook",
                    "has_custom_certificate": False,
                    "pending_update_count": 4,
                    "last_error_date": 1700000000,
                    "last_error_message": "Read timeout expired",
                },
            },
        )

    info = await _client(handler).get_webhook_info()

    assert info.url == "https://bot.example.com/webhook"
    assert info.pending_update_count == 4
    assert info.last_error_at is not None
    assert info.last_error_at.year == 2023


async def test_set_webhook_sends_registration_options() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": True})

    ok = await _client(handler).set_webhook(
        "https://bot.example.com/webhook",
        allowed_updates=("message", "callback_query"),
        drop_pending_updates=True,
        max_connections=40,
        secret_token="hook-secret",
    )

    assert ok is True
    assert seen[0] == {
        "url": "https://bot.example.com/webhook",
        "allowed_updates": ["message", "callback_query"],
        "drop_pending_updates": True,
        "max_connections": 40,
        "secret_token": "hook-secret",
    }


def test_missing_token_is_rejected() -> None:
    with pytest.raises(ValueError):
        TelegramBotClient("")
