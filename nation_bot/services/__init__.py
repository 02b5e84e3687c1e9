"""Service layer exports."""

from .auth_state import AuthenticationStateMachine, RemoteErrorDecision, describe_remote_error
from .bot_commands import BotUpdateHandler
from .conversation_state import AWAITING_AGENT_PROMPT, ConversationState, ConversationStateStore
from .token_cipher import CredentialCipher, DecryptionError, EncryptionError
from .update_poller import UpdatePoller
from .webhook_health import WebhookHealthController

__all__ = [
    "AWAITING_AGENT_PROMPT",
    "AuthenticationStateMachine",
    "BotUpdateHandler",
    "ConversationState",
    "ConversationStateStore",
    "CredentialCipher",
    "DecryptionError",
    "EncryptionError",
    "RemoteErrorDecision",
    "UpdatePoller",
    "WebhookHealthController",
    "describe_remote_error",
]
