"""Unauthenticated form endpoints: fetch a form's definition and submit to it."""

from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr, ValidationError
from sqlalchemy import select

from app.api.routes.forms import quota_exceeded_response
from app.core.auth import get_security
from app.core.config import get_settings
from app.core.rate_limit import client_identity, enforce_rate_limit
from app.db.base import get_session_factory
from app.db.models.form import Form
from app.db.models.submission import Submission
from app.domain.fields import parse_fields, validate_submission
from app.services.quota import QuotaLedger
from app.services.subscription import SubscriptionService

logger = structlog.get_logger(__name__)

router = APIRouter()

SUBMIT_RATE_LIMIT = 30
SUBMIT_RATE_WINDOW_SECONDS = 60

Primitive = StrictStr | StrictInt | StrictFloat | StrictBool | None


class SubmitRequest(BaseModel):
    payload: dict[str, Primitive] = Field(max_length=50)


class PublicFormResponse(BaseModel):
    name: str
    slug: str
    description: str | None
    fields: list[dict[str, Any]]


async def _get_form_by_slug(slug: str) -> Form:
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(Form).where(Form.slug == slug))
        form = result.scalar_one_or_none()
    if form is None:
        raise HTTPException(status_code=404, detail="Not found")
    return form


@router.get("/forms/{slug}", response_model=PublicFormResponse)
async def get_public_form(slug: str):
    form = await _get_form_by_slug(slug)
    return PublicFormResponse(
        name=form.name,
        slug=form.slug,
        description=form.description,
        fields=[f.model_dump(exclude_none=True) for f in parse_fields(form.fields)],
    )


@router.post("/forms/{slug}/submit")
async def submit_form(slug: str, request: Request, background_tasks: BackgroundTasks):
    """Accept a submission if it validates and the owner's monthly quota allows it.

    Backlog forwarding is scheduled after the response and never affects it.
    """
    settings = get_settings()
    security = get_security(request)
    client = client_identity(request.headers, trusted_proxy=settings.trusted_proxy)
    await enforce_rate_limit(
        security.rate_limiter,
        f"public_submit:{client}",
        limit=SUBMIT_RATE_LIMIT,
        window_seconds=SUBMIT_RATE_WINDOW_SECONDS,
    )

    form = await _get_form_by_slug(slug)

    try:
        body = SubmitRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        # json.JSONDecodeError is a ValueError
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid payload (object, <=50 keys, primitive values only)"},
        )

    clean, errors = validate_submission(parse_fields(form.fields), body.payload)
    if clean is None:
        return JSONResponse(status_code=400, content={"error": "validation_failed", "errors": errors})

    submission = Submission(
        form_id=form.id,
        payload=clean,
        ip=None if client.startswith("fp:") else client,
        user_agent=(request.headers.get("user-agent") or "")[:500] or None,
    )

    factory = get_session_factory()
    ledger = QuotaLedger(factory, SubscriptionService(factory).plan_for)
    result = await ledger.insert_submission_if_allowed(form.owner_email, submission)
    if not result.ok:
        return quota_exceeded_response(result)

    logger.info("submission_created", form_id=form.id, submission_id=submission.id)

    forwarder = getattr(request.app.state, "forwarder", None)
    if forwarder is not None:
        background_tasks.add_task(forwarder.forward_best_effort, form.id, submission.id)

    return {"ok": True, "submission_id": submission.id}
