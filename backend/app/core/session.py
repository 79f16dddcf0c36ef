"""Session guard: cookie extraction, token verification, expiry and subject checks."""

import re
import time
from collections.abc import Awaitable, Callable
from urllib.parse import unquote

from app.core.tokens import SessionPayload, TokenCodec

UserExists = Callable[[str], Awaitable[bool]]


def get_cookie_value(cookie_header: str | None, name: str) -> str | None:
    """Return the URL-decoded value of the first ``name`` cookie in a raw Cookie header."""
    if not cookie_header:
        return None
    match = re.search(rf"(?:^|;\s*){re.escape(name)}=([^;]+)", cookie_header)
    if match is None:
        return None
    return unquote(match.group(1))


class SessionGuard:
    """Turns a raw Cookie header into an authenticated subject, or None.

    ``user_exists`` is consulted in strict mode so that a cryptographically
    valid session for a deleted user is still rejected. There is no
    server-side revocation: a token stays valid until ``exp``.
    """

    def __init__(
        self,
        codec: TokenCodec,
        *,
        cookie_name: str = "fg_session",
        max_age_seconds: int = 60 * 60 * 12,
        user_exists: UserExists | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.codec = codec
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        self.user_exists = user_exists
        self.clock = clock

    def issue(self, email: str) -> str:
        """Mint a session token for ``email`` expiring after ``max_age_seconds``."""
        now = int(self.clock())
        payload = SessionPayload(subject=email.strip().lower(), expires_at=now + self.max_age_seconds)
        return self.codec.sign(payload)

    def read_token(self, token: str | None) -> str | None:
        """Verify a token and its expiry; return the lowercased subject."""
        payload = self.codec.verify(token)
        if payload is None:
            return None
        if payload.expires_at <= int(self.clock()):
            return None
        return payload.subject.lower()

    async def authenticate(self, cookie_header: str | None, *, strict: bool = True) -> str | None:
        """Resolve the subject behind a Cookie header.

        Never raises for malformed input; every rejection is a plain None.
        """
        raw = get_cookie_value(cookie_header, self.cookie_name)
        subject = self.read_token(raw)
        if subject is None:
            return None

        if strict and self.user_exists is not None:
            if not await self.user_exists(subject):
                return None

        return subject

    def cookie_options(self, *, secure: bool) -> dict:
        """Keyword arguments for ``Response.set_cookie`` matching the session contract."""
        return {
            "key": self.cookie_name,
            "max_age": self.max_age_seconds,
            "path": "/",
            "secure": secure,
            "httponly": True,
            "samesite": "lax",
        }
