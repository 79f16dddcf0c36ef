"""Submission browsing and CSV export for a form owner."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy import select

from app.api.routes.forms import get_owned_form
from app.core.auth import require_user
from app.core.config import get_settings
from app.db.base import get_session_factory
from app.db.models.submission import Submission
from app.domain.fields import parse_fields
from app.services.csv_export import submissions_to_csv
from app.services.pagination import (
    clamp_limit,
    decode_cursor,
    fetch_submissions_page,
    iso_ms,
    normalize_text_query,
    parse_range,
)

router = APIRouter()


class SubmissionItem(BaseModel):
    id: str
    created_at: str  # ISO 8601 UTC, millisecond precision
    payload: dict[str, Any]


class SubmissionPageResponse(BaseModel):
    items: list[SubmissionItem]
    next_cursor: str | None


def _item(sub: Submission) -> SubmissionItem:
    return SubmissionItem(id=sub.id, created_at=iso_ms(sub.created_at), payload=sub.payload or {})


@router.get("/{form_id}/submissions", response_model=SubmissionPageResponse)
async def list_submissions(
    form_id: str,
    limit: str | None = Query(default=None),
    before: str | None = Query(default=None),
    email: str | None = Query(default=None),
    date_range: str | None = Query(default=None, alias="range"),
    owner: str = Depends(require_user),
):
    """Newest-first page of submissions.

    ``before`` is the ``next_cursor`` of the previous page; an unreadable
    cursor restarts from the first page.
    """
    settings = get_settings()
    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, owner)
        page = await fetch_submissions_page(
            session,
            form.id,
            limit=clamp_limit(limit),
            cursor=decode_cursor(before),
            text=normalize_text_query(email),
            date_range=parse_range(date_range),
            tz_name=settings.display_timezone,
        )

    return SubmissionPageResponse(items=[_item(s) for s in page.items], next_cursor=page.next_cursor)


@router.get("/{form_id}/submissions/export")
async def export_submissions(
    form_id: str,
    mode: str = Query(default="latest"),
    limit: str | None = Query(default=None),
    owner: str = Depends(require_user),
):
    """CSV download: ``mode=latest`` (up to 50 newest rows) or ``mode=all``."""
    settings = get_settings()
    export_all = mode.strip().lower() == "all"
    latest_limit = clamp_limit(limit)

    factory = get_session_factory()
    async with factory() as session:
        form = await get_owned_form(session, form_id, owner)
        stmt = (
            select(Submission)
            .where(Submission.form_id == form.id)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
        )
        if not export_all:
            stmt = stmt.limit(latest_limit)
        result = await session.execute(stmt)
        rows = result.scalars().all()

    field_names = [f.name for f in parse_fields(form.fields)]
    body = submissions_to_csv(rows, field_names, tz_name=settings.display_timezone)

    suffix = "all" if export_all else f"latest-{latest_limit}"
    filename = f"form_{form.id}_submissions_{suffix}.csv"
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )
