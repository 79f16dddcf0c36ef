"""Mapping from a form submission to a Backlog issue.

Pure domain functions: the mapping config is stored per form and applied to a
submission payload to produce the issue summary, description, priority,
issue type and custom field values.
"""

import re
from datetime import UTC, datetime
from typing import Any, Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

SUMMARY_PREFIX = "[FormGate]"
SUMMARY_MAX_LENGTH = 255
DEFAULT_PRIORITY_ID = 3  # Backlog "Normal"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class SummaryMapping(BaseModel):
    type: Literal["field", "template"]
    field: str | None = None
    template: str | None = Field(default=None, max_length=500)


class DescriptionMapping(BaseModel):
    type: Literal["field", "template", "auto"]
    field: str | None = None
    template: str | None = Field(default=None, max_length=5000)


class CustomFieldMapping(BaseModel):
    backlog_field_id: int = Field(gt=0)
    form_field_name: str


class BacklogFieldMapping(BaseModel):
    summary: SummaryMapping | None = None
    description: DescriptionMapping | None = None
    issue_type_id: int | None = Field(default=None, gt=0)
    priority_id: int | None = Field(default=None, ge=1, le=4)
    custom_fields: list[CustomFieldMapping] = Field(default_factory=list, max_length=20)


class CustomFieldValue(BaseModel):
    backlog_field_id: int
    value: str | int | float | bool | None


class MappedIssue(BaseModel):
    summary: str
    description: str
    priority_id: int
    issue_type_id: int | None = None
    custom_field_values: list[CustomFieldValue] = Field(default_factory=list)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def apply_template(template: str, payload: dict[str, Any]) -> str:
    """Replace ``{name}`` placeholders with payload values (missing -> empty)."""
    return _PLACEHOLDER.sub(lambda m: _text(payload.get(m.group(1))), template)


def default_summary(form_name: str, form_slug: str) -> str:
    name = (form_name or "Form").strip()
    slug = (form_slug or "").strip()
    return f"{SUMMARY_PREFIX} {name} (/{slug})" if slug else f"{SUMMARY_PREFIX} {name}"


def build_summary(mapping: SummaryMapping | None, payload: dict[str, Any], form_name: str, form_slug: str) -> str:
    if mapping is None:
        return default_summary(form_name, form_slug)

    if mapping.type == "field" and mapping.field:
        value = _text(payload.get(mapping.field)).strip()
        if value:
            return value[:SUMMARY_MAX_LENGTH]
    elif mapping.type == "template" and mapping.template:
        rendered = apply_template(mapping.template, payload).strip()
        if rendered:
            return rendered[:SUMMARY_MAX_LENGTH]

    return f"{SUMMARY_PREFIX} {form_name}"


def format_display_time(now: datetime, tz_name: str) -> str:
    local = now.astimezone(ZoneInfo(tz_name))
    return f"{local:%Y/%m/%d %H:%M:%S} {local.tzname()}"


def _auto_body(payload: dict[str, Any]) -> str:
    lines = [f"- {key}: {_text(value)}" for key, value in payload.items()]
    return "Payload:\n" + "\n".join(lines)


def build_description(
    mapping: DescriptionMapping | None,
    payload: dict[str, Any],
    *,
    form_name: str,
    form_slug: str,
    submission_id: str,
    now: datetime,
    tz_name: str,
) -> str:
    header = "\n".join([
        f"Time: {format_display_time(now, tz_name)}",
        f"Form: {form_name} (/{form_slug})",
        f"Submission ID: {submission_id}",
        "",
    ])

    if mapping is not None and mapping.type == "field" and mapping.field:
        return header + _text(payload.get(mapping.field))
    if mapping is not None and mapping.type == "template" and mapping.template:
        return header + apply_template(mapping.template, payload)
    return header + _auto_body(payload)


def build_mapped_issue(
    *,
    form_name: str,
    form_slug: str,
    submission_id: str,
    payload: dict[str, Any],
    mapping: BacklogFieldMapping | None,
    now: datetime | None = None,
    tz_name: str = "Asia/Tokyo",
) -> MappedIssue:
    """Build the issue record for one submission."""
    now = now or datetime.now(UTC)
    mapping = mapping or BacklogFieldMapping(description=DescriptionMapping(type="auto"))

    custom_values = [
        CustomFieldValue(backlog_field_id=cf.backlog_field_id, value=payload.get(cf.form_field_name))
        for cf in mapping.custom_fields
    ]

    return MappedIssue(
        summary=build_summary(mapping.summary, payload, form_name, form_slug),
        description=build_description(
            mapping.description,
            payload,
            form_name=form_name,
            form_slug=form_slug,
            submission_id=submission_id,
            now=now,
            tz_name=tz_name,
        ),
        priority_id=mapping.priority_id or DEFAULT_PRIORITY_ID,
        issue_type_id=mapping.issue_type_id,
        custom_field_values=custom_values,
    )
