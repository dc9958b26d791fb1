from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .. import audit, models
from ..errors import InvalidArgument, InvalidTransition, NotFound
from ..rbac import ActorRole, ensure_can_act, ensure_role
from .common import paginate, utcnow

# purpose: institution-owned wig inventory feeding donations
# status: stable

logger = logging.getLogger(__name__)

SIZES = ("P", "M", "G")


def get_wig_or_404(db: Session, wig_id: int) -> models.Wig:
    wig = db.get(models.Wig, wig_id)
    if wig is None:
        raise NotFound("Wig not found")
    return wig


def _clean_text(value: str | None, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidArgument(f"{field} is required")
    return cleaned


def create_wig(
    db: Session,
    institution: models.User,
    wig_type: str,
    color: str,
    length_cm: float | None = None,
    size: str = "M",
) -> models.Wig:
    ensure_role(institution, [ActorRole.INSTITUTION], "Only institutions can register wigs")
    if size not in SIZES:
        raise InvalidArgument("Invalid wig size")
    if length_cm is not None and length_cm < 0:
        raise InvalidArgument("Wig length cannot be negative")
    wig = models.Wig(
        institution_id=institution.id,
        wig_type=_clean_text(wig_type, "wig_type"),
        color=_clean_text(color, "color"),
        length_cm=length_cm,
        size=size,
        available=True,
        created_at=utcnow(),
    )
    db.add(wig)
    db.flush()
    audit.log_action(db, institution.id, "wig.create", "wig", wig.id)
    db.commit()
    db.refresh(wig)
    logger.info("Wig %s registered by institution %s", wig.id, institution.id)
    return wig


def get_wig(db: Session, wig_id: int, user: models.User) -> models.Wig:
    wig = get_wig_or_404(db, wig_id)
    ensure_can_act(user, wig.institution_id, detail="You are not allowed to view this wig")
    return wig


def list_wigs(
    db: Session,
    user: models.User,
    *,
    available: bool | None = None,
    size: str | None = None,
    color: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    ensure_role(
        user,
        [ActorRole.INSTITUTION, ActorRole.ADMIN],
        "Only institutions can list wigs",
    )
    query = db.query(models.Wig)
    if user.actor_role is ActorRole.INSTITUTION:
        query = query.filter(models.Wig.institution_id == user.id)
    if available is not None:
        query = query.filter(models.Wig.available.is_(available))
    if size:
        if size not in SIZES:
            raise InvalidArgument("Invalid wig size")
        query = query.filter(models.Wig.size == size)
    if color:
        query = query.filter(models.Wig.color.ilike(f"%{color.strip()}%"))
    query = query.order_by(models.Wig.created_at.desc(), models.Wig.id.desc())
    return paginate(query, page, limit)


def update_wig(db: Session, wig_id: int, user: models.User, changes: dict) -> models.Wig:
    wig = get_wig_or_404(db, wig_id)
    ensure_can_act(user, wig.institution_id, detail="You are not allowed to update this wig")
    if "size" in changes and changes["size"] is not None and changes["size"] not in SIZES:
        raise InvalidArgument("Invalid wig size")
    if changes.get("available") is not None and changes["available"] != wig.available:
        # availability is owned by the donation once one exists
        if wig.donation is not None:
            raise InvalidTransition("A donated wig cannot change availability; revert the donation")
    for field in ("wig_type", "color"):
        if field in changes and changes[field] is not None:
            setattr(wig, field, _clean_text(changes[field], field))
    for field in ("length_cm", "size", "available"):
        if field in changes and changes[field] is not None:
            setattr(wig, field, changes[field])
    audit.log_action(db, user.id, "wig.update", "wig", wig.id, {"fields": sorted(changes)})
    db.commit()
    db.refresh(wig)
    return wig


def delete_wig(db: Session, wig_id: int, user: models.User) -> None:
    wig = get_wig_or_404(db, wig_id)
    ensure_can_act(user, wig.institution_id, detail="You are not allowed to delete this wig")
    if wig.donation is not None:
        raise InvalidTransition("Donated wigs cannot be deleted")
    db.delete(wig)
    audit.log_action(db, user.id, "wig.delete", "wig", wig_id)
    db.commit()
    logger.info("Wig %s deleted by user %s", wig_id, user.id)
