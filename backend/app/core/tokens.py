"""Signed stateless session tokens.

Token format: ``base64url(json_payload) + "." + base64url(hmac_sha256)``, both
segments unpadded. The MAC always covers the payload segment exactly as it
appears in the token; nothing inside the payload is trusted before that check.
"""

import base64
import binascii
import json
from typing import Literal

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from app.core.exceptions import ConfigurationError


class SessionPayload(BaseModel):
    """Signed session claims. Serialized with the short wire names ``v``/``email``/``exp``."""

    model_config = ConfigDict(frozen=True, strict=True, extra="forbid", populate_by_name=True)

    version: Literal[1] = Field(default=1, alias="v")
    subject: StrictStr = Field(alias="email")
    expires_at: StrictInt = Field(alias="exp")  # unix seconds


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Strict unpadded base64url decode.

    Raises ValueError on characters outside the alphabet or on a
    non-canonical encoding (stray trailing bits).
    """
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise ValueError("invalid base64url segment") from exc
    if b64url_encode(raw) != segment:
        raise ValueError("non-canonical base64url segment")
    return raw


class TokenCodec:
    """HMAC-SHA256 signer/verifier for :class:`SessionPayload`.

    Built once at startup and shared; it holds no mutable state.
    """

    SEPARATOR = "."

    def __init__(self, secret: str | bytes):
        if not secret:
            raise ConfigurationError("AUTH_SECRET is required to sign sessions")
        self._key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)

    def _mac(self, payload_segment: bytes) -> hmac.HMAC:
        mac = hmac.HMAC(self._key, hashes.SHA256())
        mac.update(payload_segment)
        return mac

    def sign(self, payload: SessionPayload) -> str:
        body = json.dumps(payload.model_dump(by_alias=True), separators=(",", ":"))
        payload_segment = b64url_encode(body.encode("utf-8"))
        signature = self._mac(payload_segment.encode("ascii")).finalize()
        return f"{payload_segment}{self.SEPARATOR}{b64url_encode(signature)}"

    def verify(self, token: str | None) -> SessionPayload | None:
        """Return the payload of a well-formed, correctly signed token, else None."""
        if not token or not isinstance(token, str):
            return None

        parts = token.split(self.SEPARATOR)
        if len(parts) != 2:
            return None
        payload_segment, signature_segment = parts
        if not payload_segment or not signature_segment:
            return None

        try:
            signature = b64url_decode(signature_segment)
            mac = self._mac(payload_segment.encode("ascii"))
        except ValueError:
            return None

        try:
            mac.verify(signature)
        except InvalidSignature:
            return None

        try:
            data = json.loads(b64url_decode(payload_segment))
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        try:
            return SessionPayload.model_validate(data)
        except ValidationError:
            return None
