"""Slug helpers for public form URLs."""

import re
import uuid


def slugify(value: str | None) -> str:
    """Lowercase ASCII slug: spaces/underscores to hyphens, everything else dropped."""
    s = str(value or "").strip().lower()
    s = re.sub(r"[\s_]+", "-", s)
    s = re.sub(r"[^a-z0-9-]", "", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (TypeError, ValueError, AttributeError):
        return False
    return True
