from __future__ import annotations

import enum
from typing import Iterable

from .errors import PermissionDenied

# purpose: centralize the owner/role permission policy used by every workflow operation
# status: stable


class ActorRole(str, enum.Enum):
    REQUESTER = "requester"
    INSTITUTION = "institution"
    ADMIN = "admin"


def can_act(
    actor_id: int | None,
    actor_role: ActorRole | str | None,
    resource_owner_id: int | None,
    allowed_roles: Iterable[ActorRole] = (),
) -> bool:
    """Return True when the actor may act on a resource owned by ``resource_owner_id``."""

    try:
        role = ActorRole(actor_role) if actor_role is not None else None
    except ValueError:
        return False
    if role is ActorRole.ADMIN:
        return True
    if actor_id is not None and resource_owner_id is not None and actor_id == resource_owner_id:
        return True
    return role is not None and role in tuple(allowed_roles)


def ensure_can_act(
    user,
    resource_owner_id: int | None,
    allowed_roles: Iterable[ActorRole] = (),
    detail: str = "Not authorized",
) -> None:
    if not can_act(user.id, user.role, resource_owner_id, allowed_roles):
        raise PermissionDenied(detail)


def ensure_role(user, roles: Iterable[ActorRole], detail: str = "Not authorized") -> None:
    """Require one of ``roles`` exactly; admins are not implied here."""

    if ActorRole(user.role) not in tuple(roles):
        raise PermissionDenied(detail)
