"""
Per-user authentication state: checks, login, invalidation and logout.

A user is usable only when the stored record is flagged authenticated AND its
credential decrypts with the process-wide key. Any other combination fails
closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from nation_bot.clients.nation import NationAPIError
from nation_bot.clients.user_store import SQLiteUserAuthStore
from nation_bot.models.auth import UNAUTHENTICATED, AuthCheckResult, UserAuthRecord
from nation_bot.services.token_cipher import (
    CredentialCipher,
    DecryptionError,
    EncryptionError,
)

logger = logging.getLogger(__name__)

REAUTH_MESSAGE = (
    "❌ Authentication failed. Your token may have expired. "
    "Please re-authenticate using /login."
)


@dataclass(frozen=True, slots=True)
class RemoteErrorDecision:
    """User-facing message for a failed remote call and whether to drop auth."""

    message: str
    should_clear_auth: bool = False


def describe_remote_error(exc: BaseException) -> RemoteErrorDecision:
    """Map a remote API failure to a message and an invalidation decision.

    Only an authorization failure (401) clears stored credentials; permission
    errors, other statuses and transport failures keep them.
    """
    if isinstance(exc, NationAPIError) and exc.status_code is not None:
        if exc.status_code == 401:
            return RemoteErrorDecision(REAUTH_MESSAGE, should_clear_auth=True)
        if exc.status_code == 403:
            return RemoteErrorDecision(
                "❌ Access forbidden. Please check your permissions."
            )
        return RemoteErrorDecision(
            f"❌ API Error ({exc.status_code}): {exc.message or 'Unknown error'}"
        )
    detail = str(exc) or exc.__class__.__name__
    return RemoteErrorDecision(f"❌ Error: {detail}")


class AuthenticationStateMachine:
    """Decides whether a user may make credential-bearing calls."""

    def __init__(
        self,
        *,
        store: SQLiteUserAuthStore,
        cipher: CredentialCipher,
    ) -> None:
        self._store = store
        self._cipher = cipher

    def check_authentication(self, user_key: str) -> AuthCheckResult:
        """Report the user's auth flags without changing any state."""
        try:
            record = self._store.get(str(user_key))
            if record is None or not record.is_authenticated:
                return UNAUTHENTICATED

            credential: Optional[str] = None
            if record.encrypted_credential:
                try:
                    credential = self._cipher.decrypt(record.encrypted_credential)
                except DecryptionError:
                    logger.warning(
                        "Stored credential for user %s could not be decrypted", user_key
                    )

            return AuthCheckResult(
                is_authenticated=record.is_authenticated,
                has_valid_credential=credential is not None,
                record=record,
                credential=credential,
            )
        except Exception:  # pragma: no cover - fail closed
            logger.exception("Error checking authentication for user %s", user_key)
            return UNAUTHENTICATED

    def authorize(self, user_key: str) -> AuthCheckResult:
        """Check the user and repair a ghost state before returning.

        The returned flags describe what was found; after a repair the stored
        record is no longer authenticated.
        """
        result = self.check_authentication(user_key)
        if result.is_ghost:
            self.invalidate(user_key, reason="authenticated without a usable credential")
        return result

    def seal_credential(self, credential: str) -> str:
        """Encrypt a raw credential; pass an existing cipher token through."""
        if self._cipher.is_valid_encrypted_token(credential):
            return credential
        return self._cipher.encrypt(credential)

    def complete_login(
        self,
        user_key: str,
        provider_user_id: Optional[str],
        credential: Optional[str] = None,
    ) -> UserAuthRecord:
        sealed = self.seal_credential(credential) if credential else None
        record = self._store.put(
            str(user_key),
            is_authenticated=True,
            provider_user_id=provider_user_id,
            encrypted_credential=sealed,
        )
        logger.info("User %s completed login", user_key)
        return record

    def record_callback(
        self,
        user_key: str,
        *,
        provider_user_id: Optional[str],
        is_authenticated: bool,
        credential: Optional[str] = None,
    ) -> UserAuthRecord:
        """Persist an identity-provider callback.

        Raises:
            EncryptionError: the supplied credential could not be sealed.
        """
        if is_authenticated:
            return self.complete_login(user_key, provider_user_id, credential)

        sealed = self.seal_credential(credential) if credential else None
        return self._store.put(
            str(user_key),
            is_authenticated=False,
            provider_user_id=provider_user_id,
            encrypted_credential=sealed,
        )

    def invalidate(self, user_key: str, reason: str) -> Optional[UserAuthRecord]:
        record = self._store.clear_credentials(str(user_key))
        logger.warning("Invalidated credentials for user %s: %s", user_key, reason)
        return record

    def logout(self, user_key: str) -> Optional[UserAuthRecord]:
        record = self._store.clear_credentials(str(user_key))
        logger.info("User %s logged out", user_key)
        return record

    def handle_remote_error(
        self, user_key: str, exc: BaseException
    ) -> RemoteErrorDecision:
        """Describe a remote failure, invalidating first when it calls for it."""
        decision = describe_remote_error(exc)
        if decision.should_clear_auth:
            self.invalidate(user_key, reason="remote API rejected the credential")
        return decision


__all__ = [
    "AuthenticationStateMachine",
    "EncryptionError",
    "REAUTH_MESSAGE",
    "RemoteErrorDecision",
    "describe_remote_error",
]
