"""
Route inbound Telegram updates to bot commands, callbacks and Mini App data.

Every handler is gated by the authentication state machine before it makes a
credential-bearing Nation call. Failures are logged and turned into a generic
chat reply; they never escape ``handle_update``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from nation_bot.clients.nation import NationAPIError, NationClient
from nation_bot.clients.telegram import TRANSPORT_ERRORS, TelegramBotClient
from nation_bot.models.auth import AuthCheckResult, UserAuthRecord
from nation_bot.schemas import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
    WebAppLoginData,
)
from nation_bot.services.auth_state import AuthenticationStateMachine
from nation_bot.services.conversation_state import (
    AWAITING_AGENT_PROMPT,
    ConversationStateStore,
)

logger = logging.getLogger(__name__)

AGENT_ID_PATTERN = re.compile(r"^[a-z0-9]{20}$")
MIN_AGENT_PROMPT_LENGTH = 10
LOGIN_COMPLETE_PREFIX = "login_complete_"
MAX_MESSAGE_CHARS = 3500

GENERIC_FAILURE_MESSAGE = (
    "❌ Sorry, there was an error processing your request. Please try again later.\n\n"
    "If this error persists, please contact support."
)
LOGIN_SUCCESS_MESSAGE = (
    "🎉 Authentication Successful!\n\n"
    "Your Telegram account is now linked with Privy. "
    "You can now use all bot features."
)
HELP_MESSAGE = (
    "📋 Bot Commands\n\n"
    "/login - Authenticate with Privy\n"
    "/status - Check your account status\n"
    "/credits - Show recent credit expenses\n"
    "/create_agent - Create an agent from a description\n"
    "/my_agents - List your agents\n"
    "/get_agent <agent_id> - Show one agent\n"
    "/accessToken - Show your Privy access token\n"
    "/logout - Log out and clear credentials\n"
    "/start - Show the main menu"
)

Handler = Callable[[Any, str, str], Awaitable[None]]


def _button(text: str, **target: str) -> Dict[str, str]:
    return {"text": text, **target}


def _keyboard(*rows: List[Dict[str, str]]) -> Dict[str, Any]:
    return {"inline_keyboard": [row for row in rows if row]}


def _format_last_login(record: Optional[UserAuthRecord]) -> str:
    if record is None or record.last_login is None:
        return "Unknown"
    return record.last_login.strftime("%Y-%m-%d %H:%M UTC")


def _truncate(text: str) -> str:
    if len(text) <= MAX_MESSAGE_CHARS:
        return text
    return text[: MAX_MESSAGE_CHARS - 3] + "..."


class BotUpdateHandler:
    """Dispatch a single Telegram update."""

    def __init__(
        self,
        *,
        telegram: TelegramBotClient,
        auth: AuthenticationStateMachine,
        nation: NationClient,
        conversation_state: ConversationStateStore,
        web_app_url: Optional[str] = None,
    ) -> None:
        self._telegram = telegram
        self._auth = auth
        self._nation = nation
        self._state = conversation_state
        self._web_app_url = str(web_app_url).rstrip("/") if web_app_url else None
        self._commands: Dict[str, Handler] = {
            "/start": self._start,
            "/help": self._help,
            "/login": self._login,
            "/status": self._status,
            "/logout": self._logout,
            "/accessToken": self._access_token,
            "/credits": self._credits,
            "/create_agent": self._create_agent,
            "/my_agents": self._my_agents,
            "/get_agent": self._get_agent,
        }
        self._callbacks: Dict[str, Handler] = {
            "check_status": self._check_status,
            "logout_user": self._logout,
            "reauth_request": self._reauth_request,
            "get_access_token": self._access_token,
            "show_help": self._help,
            "back_to_start": self._start,
            "create_agent": self._create_agent,
            "cancel_agent_creation": self._cancel_agent_creation,
        }

    async def handle_update(self, update: TelegramUpdate) -> None:
        if update.message is not None:
            await self._handle_message(update.message)
        elif update.callback_query is not None:
            await self._handle_callback(update.callback_query)
        else:
            logger.debug("Ignoring update %s without a message or callback", update.update_id)

    async def notify_login_success(self, chat_id: Any) -> None:
        """Send the login confirmation; delivery failures are only logged."""
        try:
            await self._telegram.send_message(chat_id, LOGIN_SUCCESS_MESSAGE)
        except TRANSPORT_ERRORS:
            logger.exception("Failed to send login confirmation to %s", chat_id)

    def login_url(self, user_key: str) -> Optional[str]:
        if not self._web_app_url:
            return None
        return f"{self._web_app_url}/login?user_id={user_key}"

    async def _handle_message(self, message: TelegramMessage) -> None:
        if message.from_ is None:
            return
        user_key = str(message.from_.id)
        chat_id = message.chat_id

        if message.web_app_data is not None:
            await self._guard(chat_id, user_key, self._web_app_login, message.web_app_data.data)
            return

        text = (message.text or "").strip()
        if not text:
            return

        if text.startswith("/"):
            command, _, argument = text.partition(" ")
            handler = self._commands.get(command.split("@", 1)[0])
            if handler is None:
                logger.debug("Ignoring unknown command %s", command)
                return
            logger.info("Processing %s command for user %s", command, user_key)
            await self._guard(chat_id, user_key, handler, argument.strip())
            return

        if self._state.pop(user_key, AWAITING_AGENT_PROMPT) is not None:
            await self._guard(chat_id, user_key, self._agent_prompt, text)

    async def _handle_callback(self, query: TelegramCallbackQuery) -> None:
        user_key = str(query.from_.id)
        chat_id = query.message.chat_id if query.message else query.from_.id
        data = query.data or ""
        logger.info("Received callback query from user %s: %s", user_key, data)

        argument = ""
        if data.startswith(LOGIN_COMPLETE_PREFIX):
            handler: Optional[Handler] = self._login_complete
            argument = data[len(LOGIN_COMPLETE_PREFIX) :]
        else:
            handler = self._callbacks.get(data)

        try:
            await self._telegram.answer_callback_query(query.id)
            if handler is not None:
                await handler(chat_id, user_key, argument)
        except Exception:
            logger.exception("Error handling callback query for user %s", user_key)
            try:
                await self._telegram.answer_callback_query(
                    query.id,
                    text="❌ Error processing request. Please try again.",
                    show_alert=True,
                )
            except TRANSPORT_ERRORS:
                logger.exception("Failed to report callback error to user %s", user_key)

    async def _guard(self, chat_id: Any, user_key: str, handler: Handler, argument: str) -> None:
        try:
            await handler(chat_id, user_key, argument)
        except Exception:
            logger.exception("Error handling update for user %s", user_key)
            try:
                await self._telegram.send_message(chat_id, GENERIC_FAILURE_MESSAGE)
            except TRANSPORT_ERRORS:
                logger.exception("Failed to send failure notice to user %s", user_key)

    async def _send(
        self, chat_id: Any, text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self._telegram.send_message(
            chat_id, _truncate(text), reply_markup=reply_markup
        )

    async def _edit_or_send(self, chat_id: Any, message_id: Optional[int], text: str) -> None:
        if message_id is not None:
            try:
                await self._telegram.edit_message_text(chat_id, message_id, _truncate(text))
                return
            except TRANSPORT_ERRORS as exc:
                logger.warning("Could not edit message %s: %s", message_id, exc)
        await self._send(chat_id, text)

    def _login_button(self, user_key: str, label: str = "🔑 Login with Privy") -> List[Dict[str, str]]:
        url = self.login_url(user_key)
        return [_button(label, url=url)] if url else []

    def _reauth_keyboard(self, user_key: str) -> Dict[str, Any]:
        return _keyboard(
            self._login_button(user_key, "🔄 Re-authenticate"),
            [_button("🏠 Main Menu", callback_data="back_to_start")],
        )

    def _main_menu_keyboard(self, result: AuthCheckResult, user_key: str) -> Dict[str, Any]:
        if result.is_usable:
            return _keyboard(
                [
                    _button("📊 Check Status", callback_data="check_status"),
                    _button("🤖 Create Agent", callback_data="create_agent"),
                ],
                [
                    _button("🎫 Get Access Token", callback_data="get_access_token"),
                    _button("🚪 Logout", callback_data="logout_user"),
                ],
                [_button("❓ Help", callback_data="show_help")],
            )
        return _keyboard(
            self._login_button(user_key),
            [_button("❓ Help", callback_data="show_help")],
        )

    async def _require_usable(
        self, chat_id: Any, user_key: str, action: str
    ) -> Optional[AuthCheckResult]:
        """Return the auth result when the user may call Nation, else reply and return None."""
        result = self._auth.authorize(user_key)
        if result.is_usable:
            return result
        if result.is_authenticated:
            text = (
                "❌ Your access token was not found or has expired.\n\n"
                f"Please re-authenticate using /login to {action}."
            )
        else:
            text = (
                "🔐 Authentication required.\n\n"
                f"Use /login to authenticate with Privy first to {action}."
            )
        await self._send(chat_id, text, self._reauth_keyboard(user_key))
        return None

    async def _report_remote_error(
        self,
        chat_id: Any,
        user_key: str,
        exc: NationAPIError,
        message_id: Optional[int] = None,
    ) -> None:
        logger.warning("Nation API call failed for user %s: %s", user_key, exc)
        decision = self._auth.handle_remote_error(user_key, exc)
        text = f"{decision.message}\n\nIf this error persists, please contact support."
        if decision.should_clear_auth:
            await self._send(chat_id, text, self._reauth_keyboard(user_key))
        else:
            await self._edit_or_send(chat_id, message_id, text)

    async def _start(self, chat_id: Any, user_key: str, _: str) -> None:
        result = self._auth.authorize(user_key)
        if result.is_usable:
            status_line = "✅ You are currently authenticated."
        else:
            status_line = "🔐 Authentication required to access all features."
        text = (
            "👋 Welcome to the Nation bot!\n\n"
            f"{status_line}\n\n"
            "Use /login to authenticate, /status to check your account "
            "and /help to see every command.\n\n"
            "🔒 Your authentication data is encrypted and securely stored."
        )
        await self._send(chat_id, text, self._main_menu_keyboard(result, user_key))

    async def _help(self, chat_id: Any, user_key: str, _: str) -> None:
        await self._send(
            chat_id,
            HELP_MESSAGE,
            _keyboard([_button("🏠 Back to Main Menu", callback_data="back_to_start")]),
        )

    async def _login(self, chat_id: Any, user_key: str, _: str) -> None:
        result = self._auth.authorize(user_key)
        if result.is_usable:
            record = result.record
            text = (
                "✅ Already Logged In\n\n"
                f"Privy User ID: {(record.provider_user_id if record else None) or 'N/A'}\n"
                f"Last Login: {_format_last_login(record)}\n\n"
                "If you need to re-authenticate, use the button below."
            )
            await self._send(
                chat_id,
                text,
                _keyboard(
                    self._login_button(user_key, "🔄 Re-authenticate"),
                    [_button("📊 Check Status", callback_data="check_status")],
                ),
            )
            return

        if self.login_url(user_key) is None:
            await self._send(chat_id, "❌ Login is not available right now. Please try again later.")
            return
        await self._send(
            chat_id,
            "🔐 Login with Privy\n\n"
            "Click the button below to securely link your Telegram account.",
            _keyboard(self._login_button(user_key)),
        )

    async def _reauth_request(self, chat_id: Any, user_key: str, _: str) -> None:
        await self._send(
            chat_id,
            "🔄 Re-authentication Required\n\n"
            "Click the button below to refresh your access token.",
            _keyboard(self._login_button(user_key, "🔑 Re-authenticate with Privy")),
        )

    async def _status(self, chat_id: Any, user_key: str, _: str) -> None:
        result = await self._require_usable(chat_id, user_key, "view account information")
        if result is None:
            return
        try:
            account = await self._nation.get_user_account(result.credential or "")
        except NationAPIError as exc:
            await self._report_remote_error(chat_id, user_key, exc)
            return

        record = result.record
        lines = [
            "📊 Account Status",
            "",
            "Authentication: ✅ Authenticated",
            f"Privy User ID: {(record.provider_user_id if record else None) or 'N/A'}",
            f"Last login: {_format_last_login(record)}",
            "",
            "🏦 Account Information:",
        ]
        if account:
            for label, key in (
                ("Account ID", "id"),
                ("Credits", "credits"),
                ("Email", "email"),
                ("Username", "username"),
                ("Created", "created_at"),
            ):
                if account.get(key) is not None:
                    lines.append(f"{label}: {account[key]}")
        else:
            lines.append("No account data available")
        await self._send(chat_id, "\n".join(lines))

    async def _check_status(self, chat_id: Any, user_key: str, _: str) -> None:
        result = self._auth.authorize(user_key)
        if not result.is_usable:
            reason = (
                "Your authentication token is invalid or expired."
                if result.is_authenticated
                else "You are not currently authenticated with Privy."
            )
            await self._send(
                chat_id,
                f"❌ Not Authenticated\n\n{reason}\n\n"
                "Use /login to authenticate and access all bot features.",
            )
            return
        record = result.record
        await self._send(
            chat_id,
            "📊 Your Status\n\n"
            "✅ Authentication: Active\n"
            f"🔑 Privy User ID: {(record.provider_user_id if record else None) or 'N/A'}\n"
            f"📅 Last Login: {_format_last_login(record)}",
            _keyboard([_button("🏠 Main Menu", callback_data="back_to_start")]),
        )

    async def _logout(self, chat_id: Any, user_key: str, _: str) -> None:
        result = self._auth.check_authentication(user_key)
        if not result.is_authenticated:
            await self._send(
                chat_id,
                "ℹ️ Already Logged Out\n\n"
                "You are not currently authenticated. No logout action needed.",
                _keyboard(self._login_button(user_key)),
            )
            return

        self._auth.logout(user_key)
        self._state.clear(user_key)
        await self._send(
            chat_id,
            "👋 Logout Successful!\n\n"
            "Your authentication status was reset and your access token removed.",
            _keyboard(self._login_button(user_key)),
        )

    async def _access_token(self, chat_id: Any, user_key: str, _: str) -> None:
        result = await self._require_usable(chat_id, user_key, "view your access token")
        if result is None:
            return
        await self._send(
            chat_id,
            "🔑 Your Privy Access Token\n\n"
            f"{result.credential}\n\n"
            "⚠️ Keep this token secure and do not share it.",
            self._reauth_keyboard(user_key),
        )
        logger.info("Access token sent to user %s", user_key)

    async def _credits(self, chat_id: Any, user_key: str, argument: str) -> None:
        result = await self._require_usable(chat_id, user_key, "view credit history")
        if result is None:
            return
        try:
            page = await self._nation.list_credit_expenses(
                result.credential or "", cursor=argument or None
            )
        except NationAPIError as exc:
            await self._report_remote_error(chat_id, user_key, exc)
            return

        events = page.get("data") or []
        if not events:
            await self._send(chat_id, "💳 No credit expenses found.")
            return
        lines = [f"💳 Credit Expenses ({len(events)})", ""]
        for event in events:
            amount = event.get("total_amount", event.get("amount", "?"))
            label = event.get("event_type") or event.get("description") or "expense"
            when = event.get("created_at") or ""
            lines.append(f"• {amount} - {label} {when}".rstrip())
        if page.get("has_more") and page.get("next_cursor"):
            lines.extend(["", f"More: /credits {page['next_cursor']}"])
        await self._send(chat_id, "\n".join(lines))

    async def _create_agent(self, chat_id: Any, user_key: str, _: str) -> None:
        result = await self._require_usable(chat_id, user_key, "create agents")
        if result is None:
            return
        self._state.set(user_key, AWAITING_AGENT_PROMPT)
        await self._send(
            chat_id,
            "🤖 Create Agent\n\n"
            "Describe the agent you want to create in your next message "
            f"(at least {MIN_AGENT_PROMPT_LENGTH} characters).",
            _keyboard([_button("❌ Cancel", callback_data="cancel_agent_creation")]),
        )

    async def _cancel_agent_creation(self, chat_id: Any, user_key: str, _: str) -> None:
        self._state.clear(user_key)
        await self._send(
            chat_id,
            "Agent creation cancelled.",
            _keyboard([_button("🏠 Main Menu", callback_data="back_to_start")]),
        )

    async def _agent_prompt(self, chat_id: Any, user_key: str, prompt: str) -> None:
        if len(prompt) < MIN_AGENT_PROMPT_LENGTH:
            self._state.set(user_key, AWAITING_AGENT_PROMPT)
            await self._send(
                chat_id,
                f"❌ Please describe your agent in at least {MIN_AGENT_PROMPT_LENGTH} characters.",
                _keyboard([_button("❌ Cancel", callback_data="cancel_agent_creation")]),
            )
            return

        result = await self._require_usable(chat_id, user_key, "create agents")
        if result is None:
            return
        credential = result.credential or ""
        loading = await self._send(chat_id, "🔄 Creating your agent...")
        message_id = loading.get("message_id") if loading else None
        try:
            draft = await self._nation.generate_agent(credential, prompt)
            agent = await self._nation.create_agent(credential, draft.get("agent", draft))
        except NationAPIError as exc:
            await self._report_remote_error(chat_id, user_key, exc, message_id)
            return

        agent_id = agent.get("id")
        logger.info("Created agent %s for user %s", agent_id, user_key)
        await self._edit_or_send(
            chat_id,
            message_id,
            "✅ Agent created!\n\n"
            f"Name: {agent.get('name') or 'Unnamed Agent'}\n"
            f"ID: {agent_id}\n\n"
            f"Use /get_agent {agent_id} to view it.",
        )

    async def _my_agents(self, chat_id: Any, user_key: str, _: str) -> None:
        result = await self._require_usable(chat_id, user_key, "view your agents")
        if result is None:
            return
        loading = await self._send(chat_id, "🔄 Loading your agents...")
        message_id = loading.get("message_id") if loading else None
        try:
            page = await self._nation.list_agents(result.credential or "", limit=100)
        except NationAPIError as exc:
            await self._report_remote_error(chat_id, user_key, exc, message_id)
            return

        agents = page.get("data") or []
        if not agents:
            text = "🤖 Your Agents\n\nYou don't have any agents yet.\n\nUse /create_agent to create your first agent!"
        else:
            lines = [
                "🤖 Your Agents",
                "",
                f"Found {len(agents)} agent(s). Use /get_agent <agent_id> for details.",
                "",
            ]
            for index, agent in enumerate(agents, start=1):
                lines.append(f"{index}. {agent.get('name') or 'Unnamed Agent'}")
                lines.append(f"   • ID: {agent.get('id')}")
                if agent.get("description"):
                    lines.append(f"   • Description: {agent['description']}")
            if page.get("has_more"):
                lines.append("... and more agents available.")
            text = "\n".join(lines)
        await self._edit_or_send(chat_id, message_id, text)

    async def _get_agent(self, chat_id: Any, user_key: str, argument: str) -> None:
        result = await self._require_usable(chat_id, user_key, "get agent information")
        if result is None:
            return
        agent_id = argument.split()[0] if argument.split() else ""
        if not agent_id:
            await self._send(
                chat_id,
                "🤖 Get Agent\n\nUsage: /get_agent <agent_id>\n\n"
                "Use /my_agents to see your available agents and their IDs.",
            )
            return
        if not AGENT_ID_PATTERN.match(agent_id):
            await self._send(
                chat_id,
                f"❌ Invalid Agent ID Format\n\nThe agent ID {agent_id} is not valid. "
                "It must be exactly 20 lowercase letters or digits.",
            )
            return

        loading = await self._send(chat_id, "🔄 Loading agent information...")
        message_id = loading.get("message_id") if loading else None
        try:
            agent = await self._nation.get_agent(result.credential or "", agent_id)
        except NationAPIError as exc:
            await self._report_remote_error(chat_id, user_key, exc, message_id)
            return
        await self._edit_or_send(
            chat_id,
            message_id,
            f"🤖 Agent Information\n\nAgent ID: {agent_id}\n\n"
            f"{json.dumps(agent, indent=2, default=str)}",
        )

    async def _login_complete(self, chat_id: Any, user_key: str, provider_user_id: str) -> None:
        if not provider_user_id:
            await self._send(chat_id, "❌ Login data was incomplete. Please try /login again.")
            return
        self._auth.complete_login(user_key, provider_user_id)
        await self._send(chat_id, LOGIN_SUCCESS_MESSAGE)

    async def _web_app_login(self, chat_id: Any, user_key: str, raw_data: str) -> None:
        try:
            payload = WebAppLoginData.model_validate_json(raw_data)
        except ValidationError:
            logger.warning("Malformed web app data from user %s", user_key)
            await self._send(
                chat_id, "❌ There was an error processing your authentication. Please try again."
            )
            return
        if payload.type != "login_complete" or not payload.privy_user_id:
            logger.info("Ignoring web app data of type %s from user %s", payload.type, user_key)
            return
        self._auth.complete_login(
            user_key, payload.privy_user_id, payload.privy_access_token
        )
        await self._send(chat_id, LOGIN_SUCCESS_MESSAGE)


__all__ = [
    "AGENT_ID_PATTERN",
    "BotUpdateHandler",
    "GENERIC_FAILURE_MESSAGE",
    "LOGIN_SUCCESS_MESSAGE",
    "MIN_AGENT_PROMPT_LENGTH",
]
