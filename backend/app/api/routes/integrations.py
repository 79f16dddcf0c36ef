"""Backlog integration routes: the user's connection and per-form forwarding settings.

API keys are encrypted with the Secret Box before they are stored and are
never returned; responses only say whether one is set.
"""

from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select

from app.api.routes.forms import get_owned_form
from app.core.auth import get_security, require_user
from app.core.config import get_settings
from app.core.exceptions import BacklogError, DecryptionError
from app.db.base import get_session_factory
from app.db.models.backlog import BacklogConnection, BacklogFormSettings
from app.db.types import utc_now
from app.domain.backlog_mapping import BacklogFieldMapping
from app.integrations.backlog import PROJECT_KEY_PATTERN, BacklogClient, normalize_project_key, normalize_space_url

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Request / Response schemas ──────────────────────────────────────


class BacklogConnectionRequest(BaseModel):
    space_url: str = Field(min_length=1, max_length=500)
    api_key: str = Field(min_length=1, max_length=500)
    default_project_key: str = Field(min_length=1, max_length=50)

    @field_validator("space_url")
    @classmethod
    def _https_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme != "https" or not parsed.hostname:
            raise ValueError("Invalid space_url (must be https URL)")
        return normalize_space_url(value)

    @field_validator("api_key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("api_key is required")
        return value

    @field_validator("default_project_key")
    @classmethod
    def _project_key(cls, value: str) -> str:
        value = value.strip()
        if not PROJECT_KEY_PATTERN.match(value):
            raise ValueError("Invalid project key")
        return value


class BacklogConnectionResponse(BaseModel):
    connected: bool
    space_url: str | None = None
    default_project_key: str | None = None
    has_api_key: bool = False


class BacklogFormSettingsRequest(BaseModel):
    enabled: bool
    project_key: str | None = Field(default=None, max_length=50)
    field_mapping: BacklogFieldMapping | None = None

    @field_validator("project_key")
    @classmethod
    def _project_key(cls, value: str | None) -> str | None:
        key = normalize_project_key(value)
        if key is not None and not PROJECT_KEY_PATTERN.match(key):
            raise ValueError("Invalid project key")
        return key


class BacklogFormSettingsResponse(BaseModel):
    enabled: bool
    project_key: str | None
    field_mapping: BacklogFieldMapping | None


# ── Helpers ─────────────────────────────────────────────────────────


def _connection_response(conn: BacklogConnection | None) -> BacklogConnectionResponse:
    if conn is None:
        return BacklogConnectionResponse(connected=False)
    return BacklogConnectionResponse(
        connected=True,
        space_url=conn.space_url,
        default_project_key=conn.default_project_key,
        has_api_key=bool(conn.api_key_enc),
    )


async def _load_connection(email: str) -> BacklogConnection | None:
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(BacklogConnection).where(BacklogConnection.user_email == email))
        return result.scalar_one_or_none()


async def _client_for(request: Request, email: str) -> tuple[BacklogClient, BacklogConnection]:
    """Build a client from the stored connection, or raise 400."""
    conn = await _load_connection(email)
    if conn is None:
        raise HTTPException(status_code=400, detail="No Backlog connection")

    security = get_security(request)
    try:
        api_key = security.secret_box.decrypt(conn.api_key_enc)
    except DecryptionError:
        logger.error("backlog_api_key_decrypt_failed")
        raise HTTPException(status_code=400, detail="Connection error") from None

    client = BacklogClient(
        conn.space_url,
        api_key,
        rate_limiter=security.rate_limiter,
        timeout=get_settings().backlog_timeout_seconds,
        transport=getattr(request.app.state, "backlog_transport", None),
    )
    return client, conn


# ── Connection routes ───────────────────────────────────────────────


@router.get("/integrations/backlog", response_model=BacklogConnectionResponse)
async def get_connection(email: str = Depends(require_user)):
    return _connection_response(await _load_connection(email))


@router.post("/integrations/backlog", response_model=BacklogConnectionResponse)
async def upsert_connection(body: BacklogConnectionRequest, request: Request, email: str = Depends(require_user)):
    encrypted = get_security(request).secret_box.encrypt(body.api_key)

    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(BacklogConnection).where(BacklogConnection.user_email == email))
        conn = result.scalar_one_or_none()
        if conn is None:
            conn = BacklogConnection(user_email=email)
            session.add(conn)

        conn.space_url = body.space_url
        conn.api_key_enc = encrypted
        conn.default_project_key = body.default_project_key
        conn.updated_at = utc_now()

        await session.commit()
        await session.refresh(conn)

    logger.info("backlog_connection_saved")
    return _connection_response(conn)


@router.post("/integrations/backlog/test")
async def check_connection(request: Request, email: str = Depends(require_user)):
    """Check that the stored key can see the default project."""
    client, conn = await _client_for(request, email)

    try:
        project = await client.find_project(conn.default_project_key)
    except BacklogError as exc:
        logger.info("backlog_connection_test_failed", code=exc.code, status=exc.status)
        return {"ok": False, "error": exc.code, "status": exc.status}

    if project is None:
        return {"ok": False, "error": "project_not_found", "status": 404}
    return {
        "ok": True,
        "project": {"id": project.get("id"), "key": project.get("projectKey"), "name": project.get("name")},
    }


@router.get("/integrations/backlog/project-meta")
async def project_meta(request: Request, project_key: str = Query(min_length=1), email: str = Depends(require_user)):
    """Issue types, custom fields and priorities for the mapping editor.

    Each list degrades to empty when its lookup fails.
    """
    key = normalize_project_key(project_key)
    if key is None or not PROJECT_KEY_PATTERN.match(key):
        raise HTTPException(status_code=400, detail="Invalid project key")

    client, _ = await _client_for(request, email)
    meta: dict[str, list] = {}
    lookups = {
        "issue_types": lambda: client.list_issue_types(key),
        "custom_fields": lambda: client.get_project_custom_fields(key),
        "priorities": client.list_priorities,
    }
    for name, lookup in lookups.items():
        try:
            meta[name] = await lookup()
        except BacklogError as exc:
            logger.info("backlog_project_meta_lookup_failed", lookup=name, code=exc.code, status=exc.status)
            meta[name] = []

    return {"ok": True, **meta}


# ── Per-form settings routes ────────────────────────────────────────


@router.get("/forms/{form_id}/integrations/backlog", response_model=BacklogFormSettingsResponse)
async def get_form_settings(form_id: str, email: str = Depends(require_user)):
    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, email)
        settings = await session.get(BacklogFormSettings, form.id)

    if settings is None:
        return BacklogFormSettingsResponse(enabled=False, project_key=None, field_mapping=None)
    return BacklogFormSettingsResponse(
        enabled=settings.enabled,
        project_key=settings.project_key,
        field_mapping=settings.field_mapping,
    )


@router.put("/forms/{form_id}/integrations/backlog", response_model=BacklogFormSettingsResponse)
async def put_form_settings(form_id: str, body: BacklogFormSettingsRequest, email: str = Depends(require_user)):
    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, email)
        settings = await session.get(BacklogFormSettings, form.id)
        if settings is None:
            settings = BacklogFormSettings(form_id=form.id)
            session.add(settings)

        settings.enabled = body.enabled
        settings.project_key = body.project_key
        settings.field_mapping = body.field_mapping.model_dump() if body.field_mapping else None
        settings.updated_at = utc_now()

        await session.commit()

    logger.info("backlog_form_settings_saved", form_id=form_id, enabled=body.enabled)
    return BacklogFormSettingsResponse(
        enabled=body.enabled,
        project_key=body.project_key,
        field_mapping=body.field_mapping,
    )
