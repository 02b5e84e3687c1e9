try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from nation_bot.clients.nation import NationAPIError
from nation_bot.clients.user_store import SQLiteUserAuthStore
from nation_bot.services.auth_state import (
    REAUTH_MESSAGE,
    AuthenticationStateMachine,
    describe_remote_error,
)
from nation_bot.services.token_cipher import CredentialCipher, EncryptionError


@pytest.fixture()
def store(tmp_path) -> SQLiteUserAuthStore:
    return SQLiteUserAuthStore(str(tmp_path / "users.db"))


@pytest.fixture()
def cipher() -> CredentialCipher:
    return CredentialCipher(secret="auth-state-secret")


@pytest.fixture()
def auth(store, cipher) -> AuthenticationStateMachine:
    return AuthenticationStateMachine(store=store, cipher=cipher)


def test_unknown_user_is_not_authenticated(auth) -> None:
    result = auth.check_authentication("1")

    assert not result.is_authenticated
    assert not result.has_valid_credential
    assert not result.is_usable


def test_complete_login_seals_the_credential(auth, store, cipher) -> None:
    auth.complete_login("1", "did:privy:abc", "raw-access-token")

    stored = store.get("1")
    assert stored is not None
    assert stored.encrypted_credential != "raw-access-token"
    assert cipher.decrypt(stored.encrypted_credential) == "raw-access-token"

    result = auth.check_authentication("1")
    assert result.is_usable
    assert result.credential == "raw-access-token"


def test_already_sealed_credential_is_not_encrypted_twice(auth, store, cipher) -> None:
    sealed = cipher.encrypt("raw-access-token")

    auth.complete_login("1", "did:privy:abc", sealed)

    stored = store.get("1")
    assert stored is not None
    assert stored.encrypted_credential == sealed
    assert auth.check_authentication("1").credential == "raw-access-token"


def test_login_without_credential_leaves_a_ghost(auth, store) -> None:
    auth.complete_login("1", "did:privy:abc")

    result = auth.check_authentication("1")
    assert result.is_ghost
    # Checking alone never repairs the record.
    stored = store.get("1")
    assert stored is not None and stored.is_authenticated


def test_authorize_repairs_a_ghost(auth, store) -> None:
    store.put("1", is_authenticated=True, provider_user_id="did:privy:abc")

    result = auth.authorize("1")

    assert result.is_ghost
    stored = store.get("1")
    assert stored is not None
    assert not stored.is_authenticated
    assert stored.provider_user_id == "did:privy:abc"
    assert not auth.check_authentication("1").is_authenticated


def test_credential_sealed_with_another_key_is_unusable(auth, store) -> None:
    foreign = CredentialCipher(secret="rotated-secret").encrypt("raw-access-token")
    store.put("1", is_authenticated=True, encrypted_credential=foreign)

    result = auth.check_authentication("1")

    assert result.is_authenticated
    assert not result.has_valid_credential
    assert result.credential is None


def test_unauthenticated_callback_does_not_mark_login(auth, store) -> None:
    auth.record_callback(
        "1", provider_user_id="did:privy:abc", is_authenticated=False
    )

    stored = store.get("1")
    assert stored is not None
    assert not stored.is_authenticated
    assert stored.last_login is None


def test_callback_with_empty_credential_stores_none(auth, store) -> None:
    auth.record_callback("1", provider_user_id="did:privy:abc", is_authenticated=True, credential="")

    stored = store.get("1")
    assert stored is not None
    assert stored.encrypted_credential is None


def test_seal_credential_rejects_empty_input(auth) -> None:
    with pytest.raises(EncryptionError):
        auth.seal_credential("")


def test_logout_clears_credential(auth, store) -> None:
    auth.complete_login("1", "did:privy:abc", "raw-access-token")

    auth.logout("1")

    stored = store.get("1")
    assert stored is not None
    assert not stored.is_authenticated
    assert stored.encrypted_credential is None


def test_unauthorized_remote_error_invalidates(auth, store) -> None:
    auth.complete_login("1", "did:privy:abc", "raw-access-token")

    decision = auth.handle_remote_error("1", NationAPIError(401, "Unauthorized"))

    assert decision.should_clear_auth
    assert decision.message == REAUTH_MESSAGE
    assert not auth.check_authentication("1").is_authenticated


@pytest.mark.parametrize(
    "exc",
    [
        NationAPIError(403, "Forbidden"),
        NationAPIError(500, "boom"),
        NationAPIError(None, "connection refused"),
        httpx.ConnectError("connection refused"),
    ],
)
def test_other_remote_errors_keep_credentials(auth, exc) -> None:
    auth.complete_login("1", "did:privy:abc", "raw-access-token")

    decision = auth.handle_remote_error("1", exc)

    assert not decision.should_clear_auth
    assert auth.check_authentication("1").is_usable


def test_describe_remote_error_messages() -> None:
    assert (
        describe_remote_error(NationAPIError(403, "nope")).message
        == "❌ Access forbidden. Please check your permissions."
    )
    assert describe_remote_error(NationAPIError(502, "Bad gateway")).message == (
        "❌ API Error (502): Bad gateway"
    )
    assert describe_remote_error(RuntimeError("timed out")).message == "❌ Error: timed out"
