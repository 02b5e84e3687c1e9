"""
Nation API client for account, credit and agent operations.

Every call is made on behalf of a user and carries that user's bearer
credential.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class NationAPIError(Exception):
    """Raised when the Nation API rejects a request or cannot be reached.

    ``status_code`` is None for transport failures.
    """

    def __init__(self, status_code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class NationClient:
    """Call the Nation REST API with a per-user access token."""

    USER_ACCOUNT_PATH = "/credit/user/account"
    USER_EVENTS_PATH = "/credit/user/events"
    AGENTS_PATH = "/agents"
    AGENT_GENERATE_PATH = "/agent/generate"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        query = {key: value for key, value in (params or {}).items() if value is not None}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method, path, headers=headers, params=query, json=json
                )
        except httpx.HTTPError as exc:
            raise NationAPIError(None, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            raise NationAPIError(response.status_code, _error_message(response))
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise NationAPIError(
                response.status_code, "Invalid JSON in Nation API response"
            ) from exc

    async def get_user_account(self, access_token: str) -> Dict[str, Any]:
        return await self._request("GET", self.USER_ACCOUNT_PATH, access_token)

    async def list_credit_expenses(
        self, access_token: str, *, cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return one page of the user's credit expense history."""
        data = await self._request(
            "GET",
            self.USER_EVENTS_PATH,
            access_token,
            params={"direction": "expense", "cursor": cursor or None},
        )
        if data:
            return data
        return {"data": [], "next_cursor": "", "has_more": False}

    async def list_agents(
        self, access_token: str, *, limit: int = 100, cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            self.AGENTS_PATH,
            access_token,
            params={"limit": limit, "cursor": cursor},
        )

    async def get_agent(self, access_token: str, agent_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self.AGENTS_PATH}/{agent_id}", access_token)

    async def generate_agent(self, access_token: str, prompt: str) -> Dict[str, Any]:
        """Ask the service to draft an agent definition from a natural-language prompt."""
        return await self._request(
            "POST", self.AGENT_GENERATE_PATH, access_token, json={"prompt": prompt}
        )

    async def create_agent(
        self, access_token: str, agent: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request("POST", self.AGENTS_PATH, access_token, json=agent)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or "Unknown error"
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("detail") or payload.get("error")
        if message:
            return str(message)
    return "Unknown error"


__all__ = ["NationAPIError", "NationClient"]
