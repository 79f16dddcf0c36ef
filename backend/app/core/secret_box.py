"""Authenticated encryption for secrets stored at rest (third-party API keys).

Blob layout: ``nonce(12) || tag(16) || ciphertext``, base64url without padding.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.core.exceptions import ConfigurationError, DecryptionError
from app.core.tokens import b64url_decode, b64url_encode

# Fixed, non-secret salt: domain separation for the derived key.
KDF_SALT = b"formgate-aes256-encryption-key-v1"
KDF_ITERATIONS = 100_000
NONCE_BYTES = 12
TAG_BYTES = 16


class SecretBox:
    """AES-256-GCM box around a key derived once from the app secret."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ConfigurationError("SecretBox key must be 32 bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_secret(cls, secret: str) -> "SecretBox":
        """Derive the 32-byte key with PBKDF2-HMAC-SHA256. Call once at startup."""
        if not secret:
            raise ConfigurationError("APP_ENC_KEY is required to store secrets")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        return cls(kdf.derive(secret.encode("utf-8")))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_BYTES)
        # AESGCM returns ciphertext || tag; the stored layout puts the tag first.
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return b64url_encode(nonce + tag + ciphertext)

    def decrypt(self, blob: str) -> str:
        """Open a blob produced by :meth:`encrypt`.

        Raises:
            DecryptionError: malformed or truncated blob, wrong key, or tampering.
        """
        try:
            raw = b64url_decode(blob)
        except (TypeError, ValueError) as exc:
            raise DecryptionError("malformed blob") from exc

        if len(raw) < NONCE_BYTES + TAG_BYTES:
            raise DecryptionError("blob too short")

        nonce = raw[:NONCE_BYTES]
        tag = raw[NONCE_BYTES:NONCE_BYTES + TAG_BYTES]
        ciphertext = raw[NONCE_BYTES + TAG_BYTES:]

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError("authentication failed") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("plaintext is not valid UTF-8") from exc
