from __future__ import annotations

import math
import re
from datetime import datetime, timezone

from sqlalchemy.orm import Query

from ..errors import InvalidArgument

# purpose: small helpers shared by the workflow services
# status: stable

MAX_NOTE_LENGTH = 500
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

_WHITESPACE = re.compile(r"\s+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def clean_note(note: str | None, field: str = "note") -> str | None:
    """Collapse whitespace and enforce the note length limit; blank becomes None."""

    if note is None:
        return None
    cleaned = _WHITESPACE.sub(" ", note).strip()
    if not cleaned:
        return None
    if len(cleaned) > MAX_NOTE_LENGTH:
        raise InvalidArgument(f"{field} cannot be longer than {MAX_NOTE_LENGTH} characters")
    return cleaned


def page_params(page: int | None, limit: int | None) -> tuple[int, int, int]:
    page = page if page and page > 0 else 1
    if not limit or limit < 1:
        limit = DEFAULT_PAGE_SIZE
    limit = min(limit, MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def paginate(query: Query, page: int | None = None, limit: int | None = None) -> dict:
    page, limit, offset = page_params(page, limit)
    count = query.order_by(None).count()
    rows = query.offset(offset).limit(limit).all()
    return {
        "count": count,
        "total_pages": math.ceil(count / limit) if count else 0,
        "current_page": page,
        "data": rows,
    }
