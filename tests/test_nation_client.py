try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json

import httpx
import pytest

from nation_bot.clients.nation import NationAPIError, NationClient

pytestmark = pytest.mark.anyio


class RecordingHandler:
    def __init__(self, response: httpx.Response | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def _client(handler) -> NationClient:
    return NationClient("https://nation.example.com/", transport=httpx.MockTransport(handler))


async def test_requests_carry_the_bearer_credential() -> None:
    handler = RecordingHandler(httpx.Response(200, json={"id": "acct-1", "credits": 12}))

    account = await _client(handler).get_user_account("access-token")

    assert account == {"id": "acct-1", "credits": 12}
    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/credit/user/account"
    assert request.headers["Authorization"] == "Bearer access-token"


async def test_credit_expenses_filter_direction_and_skip_empty_cursor() -> None:
    handler = RecordingHandler(httpx.Response(200, json={"data": [{"amount": 3}], "has_more": False}))

    page = await _client(handler).list_credit_expenses("access-token")

    assert page["data"] == [{"amount": 3}]
    params = handler.requests[0].url.params
    assert params["direction"] == "expense"
    assert "cursor" not in params


async def test_credit_expenses_default_page_on_empty_body() -> None:
    handler = RecordingHandler(httpx.Response(200))

    page = await _client(handler).list_credit_expenses("access-token", cursor="abc")

    assert page == {"data": [], "next_cursor": "", "has_more": False}
    assert handler.requests[0].url.params["cursor"] == "abc"


async def test_agent_generation_and_creation_post_json() -> None:
    handler = RecordingHandler(httpx.Response(200, json={"id": "a" * 20}))
    client = _client(handler)

    await client.generate_agent("access-token", "A bot that summarizes news")
    await client.create_agent("access-token", {"name": "News"})

    generate, create = handler.requests
    assert generate.method == "POST"
    assert generate.url.path == "/agent/generate"
    assert json.loads(generate.content) == {"prompt": "A bot that summarizes news"}
    assert create.url.path == "/agents"
    assert json.loads(create.content) == {"name": "News"}


async def test_get_agent_and_list_agents_paths() -> None:
    handler = RecordingHandler(httpx.Response(200, json={"data": []}))
    client = _client(handler)

    await client.list_agents("access-token", limit=5)
    await client.get_agent("access-token", "abcdefghij0123456789")

    listing, single = handler.requests
    assert listing.url.path == "/agents"
    assert listing.url.params["limit"] == "5"
    assert single.url.path == "/agents/abcdefghij0123456789"


async def test_http_error_status_is_surfaced_with_message() -> None:
    handler = RecordingHandler(httpx.Response(401, json={"message": "Token expired"}))

    with pytest.raises(NationAPIError) as excinfo:
        await _client(handler).get_user_account("stale-token")

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Token expired"


async def test_non_json_error_body_uses_text() -> None:
    handler = RecordingHandler(httpx.Response(502, text="Bad gateway"))

    with pytest.raises(NationAPIError) as excinfo:
        await _client(handler).list_agents("access-token")

    assert excinfo.value.status_code == 502
    assert excinfo.value.message == "Bad gateway"


async def test_non_json_success_body_is_a_nation_error() -> None:
    handler = RecordingHandler(httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(NationAPIError) as excinfo:
        await _client(handler).get_user_account("access-token")

    assert excinfo.value.status_code == 200
    assert "Invalid JSON" in excinfo.value.message


async def test_transport_failure_has_no_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NationAPIError) as excinfo:
        await _client(handler).get_user_account("access-token")

    assert excinfo.value.status_code is None
    assert "connection refused" in excinfo.value.message
