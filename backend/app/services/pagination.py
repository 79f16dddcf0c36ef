"""Keyset pagination over a form's submissions, newest first.

The order key is ``(created_at DESC, id DESC)``. A cursor names the last row
of the previous page as ``"<ISO-8601 UTC with ms>Z__<id>"``; the next page
holds rows strictly before it in that order, so chaining pages never skips
or repeats a row even when timestamps collide.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from zoneinfo import ZoneInfo

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.submission import Submission

DEFAULT_LIMIT = 50
MAX_LIMIT = 50
MAX_CURSOR_LENGTH = 300
MAX_CURSOR_ID_LENGTH = 80
MAX_TEXT_QUERY_LENGTH = 200
CURSOR_SEPARATOR = "__"

DateRange = Literal["today", "7d", "30d"]


@dataclass(frozen=True)
class Cursor:
    created_at: datetime
    id: str


@dataclass
class SubmissionPage:
    items: list[Submission] = field(default_factory=list)
    next_cursor: str | None = None


def iso_ms(ts: datetime) -> str:
    ts = ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts.astimezone(UTC)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def encode_cursor(created_at: datetime, row_id: str) -> str:
    return f"{iso_ms(created_at)}{CURSOR_SEPARATOR}{row_id}"


def decode_cursor(raw: str | None) -> Cursor | None:
    """Parse a cursor string. Any malformed input yields None."""
    if not raw or not isinstance(raw, str) or len(raw) > MAX_CURSOR_LENGTH:
        return None

    ts_part, sep, id_part = raw.partition(CURSOR_SEPARATOR)
    if not sep:
        return None

    try:
        created_at = datetime.fromisoformat(ts_part.strip())
        # Offsets at year 1 or 9999 overflow when shifted to UTC
        created_at = created_at.replace(tzinfo=UTC) if created_at.tzinfo is None else created_at.astimezone(UTC)
    except (ValueError, OverflowError):
        return None

    row_id = id_part.strip()
    if not row_id or len(row_id) > MAX_CURSOR_ID_LENGTH:
        return None

    return Cursor(created_at=created_at, id=row_id)


def clamp_limit(value: Any) -> int:
    """Page size in ``[1, MAX_LIMIT]``; unusable input gets the default."""
    if value is None or isinstance(value, bool):
        return DEFAULT_LIMIT
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if not math.isfinite(number):
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, math.floor(number)))


def normalize_text_query(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()[:MAX_TEXT_QUERY_LENGTH]
    return text or None


def parse_range(value: str | None) -> DateRange | None:
    value = (value or "").strip().lower()
    if value in ("today", "7d", "30d"):
        return value
    return None


def range_lower_bound(date_range: DateRange | None, now: datetime, tz_name: str = "Asia/Tokyo") -> datetime | None:
    """Inclusive lower bound for a date range, in UTC.

    ``today`` starts at local midnight in ``tz_name``; ``7d``/``30d`` reach
    back that many days from ``now``.
    """
    if date_range is None:
        return None

    if date_range == "today":
        local_midnight = now.astimezone(ZoneInfo(tz_name)).replace(hour=0, minute=0, second=0, microsecond=0)
        return local_midnight.astimezone(UTC)

    days_back = 7 if date_range == "7d" else 30
    return now.astimezone(UTC) - timedelta(days=days_back)


async def fetch_submissions_page(
    session: AsyncSession,
    form_id: str,
    *,
    limit: int = DEFAULT_LIMIT,
    cursor: Cursor | None = None,
    text: str | None = None,
    date_range: DateRange | None = None,
    now: datetime | None = None,
    tz_name: str = "Asia/Tokyo",
) -> SubmissionPage:
    """Fetch one page of submissions for ``form_id``.

    ``text`` is a case-insensitive substring match on the payload's
    ``email`` value; LIKE wildcards in it are matched literally.
    """
    limit = clamp_limit(limit)
    now = now or datetime.now(UTC)

    stmt = select(Submission).where(Submission.form_id == form_id)

    if text:
        stmt = stmt.where(Submission.payload["email"].as_string().icontains(text, autoescape=True))

    lower = range_lower_bound(date_range, now, tz_name)
    if lower is not None:
        stmt = stmt.where(Submission.created_at >= lower)

    if cursor is not None:
        stmt = stmt.where(
            or_(
                Submission.created_at < cursor.created_at,
                and_(Submission.created_at == cursor.created_at, Submission.id < cursor.id),
            )
        )

    stmt = stmt.order_by(Submission.created_at.desc(), Submission.id.desc()).limit(limit + 1)

    result = await session.execute(stmt)
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = None
    if has_more and items:
        last = items[-1]
        next_cursor = encode_cursor(last.created_at, last.id)

    return SubmissionPage(items=items, next_cursor=next_cursor)
