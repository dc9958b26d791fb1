"""Fixed registry of request and analysis lifecycle states."""

from __future__ import annotations

from enum import IntEnum

# purpose: single source of truth for status ids shared by requests and analyses
# status: stable


class Status(IntEnum):
    PENDING = 1
    UNDER_REVIEW = 2
    APPROVED = 3
    REJECTED = 4
    COMPLETED = 5
    CANCELLED_BY_REQUESTER = 6


_DISPLAY_NAMES: dict[int, str] = {
    Status.PENDING: "Pending",
    Status.UNDER_REVIEW: "Under Review",
    Status.APPROVED: "Approved",
    Status.REJECTED: "Rejected",
    Status.COMPLETED: "Completed",
    Status.CANCELLED_BY_REQUESTER: "Cancelled by Requester",
}

TERMINAL: frozenset[int] = frozenset(
    {
        Status.APPROVED,
        Status.REJECTED,
        Status.COMPLETED,
        Status.CANCELLED_BY_REQUESTER,
    }
)

# states an institution may write through its own analysis
INSTITUTION_SETTABLE: frozenset[int] = frozenset(
    {Status.PENDING, Status.UNDER_REVIEW, Status.APPROVED, Status.REJECTED}
)

OPEN: frozenset[int] = frozenset({Status.PENDING, Status.UNDER_REVIEW})


def _coerce(status_id) -> int | None:
    if isinstance(status_id, bool):
        return None
    try:
        return int(status_id)
    except (TypeError, ValueError):
        return None


def name_of(status_id) -> str:
    """Return the display name for ``status_id`` or an empty string."""

    value = _coerce(status_id)
    if value is None:
        return ""
    return _DISPLAY_NAMES.get(value, "")


def is_valid(status_id) -> bool:
    value = _coerce(status_id)
    return value is not None and value in _DISPLAY_NAMES


def is_terminal(status_id) -> bool:
    value = _coerce(status_id)
    return value is not None and value in TERMINAL


def key_of(status_id) -> str:
    """Return the snake_case key used in aggregates and event payloads."""

    value = _coerce(status_id)
    if value is None or value not in _DISPLAY_NAMES:
        return ""
    return Status(value).name.lower()


def all_statuses() -> list[dict[str, object]]:
    return [
        {
            "id": int(status),
            "key": status.name.lower(),
            "name": _DISPLAY_NAMES[status],
            "terminal": status in TERMINAL,
        }
        for status in Status
    ]
