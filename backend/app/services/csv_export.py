"""CSV rendering for submission exports (Excel friendly: UTF-8 BOM, CRLF)."""

import csv
import io
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from app.db.models.submission import Submission

BOM = "\ufeff"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_csv(header: Sequence[str], rows: Iterable[Sequence[Any]], *, bom: bool = True) -> str:
    """Render rows; cells containing a quote, comma, CR or LF are quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow([_cell(h) for h in header])
    for row in rows:
        writer.writerow([_cell(v) for v in row])

    body = buf.getvalue()
    if body.endswith("\r\n"):
        body = body[:-2]
    return BOM + body if bom else body


def format_local_timestamp(ts: datetime, tz_name: str = "Asia/Tokyo") -> str:
    return ts.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M:%S")


def submissions_to_csv(
    submissions: Iterable[Submission],
    field_names: Sequence[str],
    *,
    tz_name: str = "Asia/Tokyo",
) -> str:
    header = ["created_at", *field_names]
    rows = []
    for sub in submissions:
        payload = sub.payload if isinstance(sub.payload, dict) else {}
        rows.append([format_local_timestamp(sub.created_at, tz_name), *(payload.get(name) for name in field_names)])
    return to_csv(header, rows)
