"""Authenticated encryption for bearer credentials stored at rest."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

_NONCE_BYTES = 16
_TAG_BYTES = 16
_DELIMITER = ":"


class EncryptionError(ValueError):
    """Raised when a credential cannot be encrypted."""


class DecryptionError(ValueError):
    """Raised when a token is malformed or fails authentication."""


def _split_token(token: str) -> tuple[bytes, bytes, bytes]:
    """Decode the outer base64 layer and return (nonce, tag, ciphertext)."""
    combined = base64.b64decode(token.encode("ascii"), validate=True).decode("ascii")
    parts = combined.split(_DELIMITER)
    if len(parts) != 3:
        raise ValueError("Invalid encrypted data format")
    nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    if len(nonce) != _NONCE_BYTES or len(tag) != _TAG_BYTES or not ciphertext:
        raise ValueError("Invalid encrypted data format")
    return nonce, tag, ciphertext


class CredentialCipher:
    """Encrypt and decrypt bearer credentials with AES-256-GCM.

    Tokens have the shape ``base64(hex(nonce) ":" hex(tag) ":" hex(ciphertext))``
    so a single opaque string carries everything needed for decryption.
    """

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        key = hashlib.sha256(secret.encode("utf-8")).digest()
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext credential and return the token."""
        if not plaintext:
            raise EncryptionError("Access token is required for encryption.")
        nonce = os.urandom(_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        combined = _DELIMITER.join((nonce.hex(), tag.hex(), ciphertext.hex()))
        return base64.b64encode(combined.encode("ascii")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a token and return the plaintext credential."""
        if not token:
            raise DecryptionError("Encrypted token is required for decryption.")
        try:
            nonce, tag, ciphertext = _split_token(token)
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, binascii.Error, UnicodeError, ValueError) as exc:
            raise DecryptionError(
                "Failed to decrypt token; invalid ciphertext provided."
            ) from exc

    @staticmethod
    def is_valid_encrypted_token(token: object) -> bool:
        """Return True when ``token`` has the structure of our ciphertext.

        Only the layout is inspected; nothing is decrypted.
        """
        if not isinstance(token, str) or not token:
            return False
        try:
            _split_token(token)
        except (binascii.Error, UnicodeError, ValueError):
            return False
        return True


__all__ = ["CredentialCipher", "DecryptionError", "EncryptionError"]
