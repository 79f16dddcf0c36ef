"""Magic-link login, logout and session introspection."""

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, EmailStr

from app.core.auth import get_security, require_user
from app.core.config import get_settings
from app.core.rate_limit import client_identity, enforce_rate_limit
from app.db.base import get_session_factory
from app.services.magic_link import MagicLinkService
from app.services.users import UserService

logger = structlog.get_logger(__name__)

router = APIRouter()

LOGIN_RATE_LIMIT = 10
LOGIN_RATE_WINDOW_SECONDS = 10 * 60


class LoginRequest(BaseModel):
    email: EmailStr


@router.post("/login")
async def login(body: LoginRequest, request: Request):
    """Send a login link.

    Always answers ``{"ok": true}`` so the response does not reveal whether
    the address was throttled or delivery failed.
    """
    settings = get_settings()
    security = get_security(request)
    client = client_identity(request.headers, trusted_proxy=settings.trusted_proxy)
    await enforce_rate_limit(
        security.rate_limiter,
        f"auth_login_ip:{client}",
        limit=LOGIN_RATE_LIMIT,
        window_seconds=LOGIN_RATE_WINDOW_SECONDS,
    )

    email = str(body.email).strip().lower()
    token = await MagicLinkService(get_session_factory()).generate(email)
    if token is None:
        return {"ok": True}

    url = f"{settings.app_url.rstrip('/')}/api/auth/verify?token={token}"
    try:
        await request.app.state.magic_link_sender.send(email, url)
    except Exception as exc:
        logger.error("magic_link_send_failed", error_type=type(exc).__name__)

    if settings.debug:
        return {"ok": True, "debug_url": url}
    return {"ok": True}


@router.get("/verify")
async def verify(request: Request, token: str = Query(default="")):
    """Consume a login link, create the user on first login and set the session cookie."""
    settings = get_settings()
    base_url = settings.app_url.rstrip("/")

    factory = get_session_factory()
    email = await MagicLinkService(factory).verify(token)
    if email is None:
        return RedirectResponse(f"{base_url}/login?error=invalid_link", status_code=303)

    await UserService(factory).ensure(email)

    guard = get_security(request).guard
    response = RedirectResponse(f"{base_url}/forms", status_code=303)
    response.set_cookie(value=guard.issue(email), **guard.cookie_options(secure=settings.secure_cookies))
    logger.info("login_succeeded")
    return response


@router.post("/logout")
async def logout(request: Request):
    settings = get_settings()
    guard = get_security(request).guard
    options = guard.cookie_options(secure=settings.secure_cookies) | {"max_age": 0}

    response = JSONResponse({"ok": True})
    response.set_cookie(value="", **options)
    return response


@router.get("/me")
async def me(email: str = Depends(require_user)):
    return {"email": email}
