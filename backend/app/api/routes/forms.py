"""Form management routes: create, list, read, update and delete owned forms."""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_user
from app.db.base import get_session_factory
from app.db.models.form import Form
from app.domain.fields import parse_fields
from app.domain.slugs import is_uuid, slugify
from app.services.quota import QuotaExceeded, QuotaLedger
from app.services.subscription import SubscriptionService

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Request / Response schemas ──────────────────────────────────────


class FormCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    fields: list[dict[str, Any]] | None = None


class FormUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    fields: list[dict[str, Any]] | None = None


class FormResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    description: str | None
    fields: list[dict[str, Any]]
    created_at: datetime
    updated_at: datetime


# ── Helpers ─────────────────────────────────────────────────────────


def quota_exceeded_response(result: QuotaExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={"error": "plan_limit_reached", "current": result.current, "max": result.max},
    )


def _validated_fields(raw: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    try:
        fields = parse_fields(raw)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_fields", "errors": exc.errors(include_url=False, include_context=False)},
        ) from None
    return [f.model_dump(exclude_none=True) for f in fields]


def _to_response(form: Form) -> FormResponse:
    return FormResponse(
        id=form.id,
        name=form.name,
        slug=form.slug,
        description=form.description,
        fields=_validated_fields(form.fields),
        created_at=form.created_at,
        updated_at=form.updated_at,
    )


async def get_owned_form(session: AsyncSession, form_id: str, email: str) -> Form:
    """Load a form owned by ``email`` or raise 404 (also for other owners' forms)."""
    if not is_uuid(form_id):
        raise HTTPException(status_code=404, detail="Form not found")
    form = await session.get(Form, form_id)
    if form is None or form.owner_email != email:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


# ── Routes ──────────────────────────────────────────────────────────


@router.post("", status_code=201, response_model=FormResponse)
async def create_form(body: FormCreateRequest, email: str = Depends(require_user)):
    """Create a form, subject to the owner's plan form limit."""
    slug = slugify(body.slug or body.name)
    if not slug:
        raise HTTPException(status_code=400, detail="invalid_slug")

    fields = _validated_fields(body.fields)

    factory = get_session_factory()
    async with factory() as session:
        taken = await session.execute(select(Form.id).where(Form.slug == slug))
        if taken.scalar_one_or_none() is not None:
            raise HTTPException(status_code=409, detail="slug_taken")

    form = Form(
        owner_email=email,
        name=body.name.strip(),
        slug=slug,
        description=(body.description or "").strip() or None,
        fields=fields,
    )

    ledger = QuotaLedger(factory, SubscriptionService(factory).plan_for)
    try:
        result = await ledger.insert_form_if_allowed(email, form)
    except IntegrityError:
        # Slug claimed between the check and the insert
        raise HTTPException(status_code=409, detail="slug_taken") from None

    if not result.ok:
        return quota_exceeded_response(result)

    logger.info("form_created", form_id=form.id)
    return _to_response(result.resource)


@router.get("", response_model=list[FormResponse])
async def list_forms(email: str = Depends(require_user)):
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(Form).where(Form.owner_email == email).order_by(Form.created_at.desc(), Form.id.desc())
        )
        forms = result.scalars().all()
    return [_to_response(f) for f in forms]


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(form_id: str, email: str = Depends(require_user)):
    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, email)
    return _to_response(form)


@router.patch("/{form_id}", response_model=FormResponse)
async def update_form(form_id: str, body: FormUpdateRequest, email: str = Depends(require_user)):
    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, email)

        if body.name is not None:
            form.name = body.name.strip()
        if "description" in body.model_fields_set:
            form.description = (body.description or "").strip() or None
        if body.fields is not None:
            form.fields = _validated_fields(body.fields)

        await session.commit()
        await session.refresh(form)

    logger.info("form_updated", form_id=form.id)
    return _to_response(form)


@router.delete("/{form_id}")
async def delete_form(form_id: str, email: str = Depends(require_user)):
    """Delete a form; its submissions and Backlog settings go with it."""
    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, email)
        await session.delete(form)
        await session.commit()

    logger.info("form_deleted", form_id=form_id)
    return {"ok": True}
