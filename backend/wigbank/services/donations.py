"""Donation finalization: bind one available wig to one approved request."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, models
from ..errors import Conflict, FailedPrecondition, InvalidTransition, NotFound, PermissionDenied
from ..events import DonationCreated, EventSink, NullSink
from ..rbac import ActorRole, can_act, ensure_can_act, ensure_role
from ..statuses import OPEN, Status
from .common import as_aware, clean_note, paginate, utcnow
from .requests import get_request_or_404

# purpose: the only two-entity atomic write in the workflow (donation row + wig availability)
# inputs: SQLAlchemy session, donating institution, optional event sink
# outputs: committed Donation rows, DonationCreated events
# status: stable

logger = logging.getLogger(__name__)

REVERT_WINDOW_HOURS = int(os.getenv("DONATION_REVERT_WINDOW_HOURS", "24"))


def get_donation_or_404(db: Session, donation_id: int) -> models.Donation:
    donation = db.get(models.Donation, donation_id)
    if donation is None:
        raise NotFound("Donation not found")
    return donation


def _institution_analysis(
    db: Session, request_id: int, institution_id: int
) -> models.InstitutionAnalysis | None:
    return (
        db.query(models.InstitutionAnalysis)
        .filter(
            models.InstitutionAnalysis.request_id == request_id,
            models.InstitutionAnalysis.institution_id == institution_id,
        )
        .first()
    )


def is_approved_for(
    request: models.WigRequest, analysis: models.InstitutionAnalysis | None
) -> bool:
    """A request is approved overall, or by this institution's own open-request analysis.

    The second branch is broader than the legacy rule, which only accepted an
    overall "Approved" request. Without it an analysis approval could never
    lead to a donation while the request stays cancellable.
    """

    if request.status == Status.APPROVED:
        return True
    return (
        analysis is not None
        and analysis.status == Status.APPROVED
        and request.status in OPEN
    )


def donate(
    db: Session,
    wig_id: int,
    request_id: int,
    institution: models.User,
    note: str | None = None,
    sink: EventSink | None = None,
) -> models.Donation:
    """Create a donation and retire the wig in a single transaction.

    Guards run in order: wig ownership and availability, no earlier donation of
    the wig, request approval. Any failure rolls the whole unit back.
    """

    sink = sink or NullSink()
    ensure_role(institution, [ActorRole.INSTITUTION], "Only institutions can donate wigs")
    note = clean_note(note)

    wig = (
        db.query(models.Wig)
        .filter(models.Wig.id == wig_id)
        .with_for_update()
        .first()
    )
    if wig is None:
        raise NotFound("Wig not found")
    if wig.institution_id != institution.id:
        raise FailedPrecondition(
            FailedPrecondition.WIG_NOT_OWNED,
            "You can only donate wigs registered by your institution",
        )
    existing = db.query(models.Donation.id).filter(models.Donation.wig_id == wig_id).first()
    if existing is not None:
        raise Conflict("This wig has already been donated")
    if not wig.available:
        raise FailedPrecondition(
            FailedPrecondition.WIG_UNAVAILABLE,
            "This wig is not available for donation",
        )

    request = get_request_or_404(db, request_id, for_update=True)
    analysis = _institution_analysis(db, request.id, institution.id)
    if not is_approved_for(request, analysis):
        raise FailedPrecondition(
            FailedPrecondition.REQUEST_NOT_APPROVED,
            "Donations can only be made to approved requests",
        )

    now = utcnow()
    donation = models.Donation(
        wig_id=wig.id,
        request_id=request.id,
        institution_id=institution.id,
        note=note,
        request_status_before=request.status,
        created_at=now,
    )
    db.add(donation)
    try:
        db.flush()
        flipped = (
            db.query(models.Wig)
            .filter(models.Wig.id == wig.id, models.Wig.available.is_(True))
            .update({"available": False}, synchronize_session=False)
        )
        if flipped != 1:
            raise Conflict("This wig has already been donated")
        request.status = int(Status.COMPLETED)
        request.updated_at = now
        if analysis is not None and analysis.status == Status.APPROVED:
            analysis.status = int(Status.COMPLETED)
            analysis.updated_at = now
        sink.emit(DonationCreated(donation_id=donation.id, request_id=request.id))
        audit.log_action(
            db,
            institution.id,
            "donation.create",
            "donation",
            donation.id,
            {"wig_id": wig.id, "request_id": request.id},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("This wig has already been donated")
    except Conflict:
        db.rollback()
        raise
    db.refresh(donation)
    logger.info(
        "Donation %s: wig %s to request %s by institution %s",
        donation.id,
        wig_id,
        request_id,
        institution.id,
    )
    return donation


def revert(
    db: Session,
    donation_id: int,
    institution: models.User,
    *,
    now: datetime | None = None,
) -> None:
    """Undo a recent donation, making the wig available again."""

    donation = get_donation_or_404(db, donation_id)
    ensure_can_act(
        institution,
        donation.institution_id,
        detail="You are not allowed to remove this donation",
    )
    now = now or utcnow()
    if now - as_aware(donation.created_at) > timedelta(hours=REVERT_WINDOW_HOURS):
        raise InvalidTransition("Donation too old to revert")

    wig = (
        db.query(models.Wig)
        .filter(models.Wig.id == donation.wig_id)
        .with_for_update()
        .first()
    )
    if wig is not None:
        wig.available = True
    request = get_request_or_404(db, donation.request_id, for_update=True)
    if request.status == Status.COMPLETED:
        request.status = donation.request_status_before or int(Status.APPROVED)
        request.updated_at = now
    analysis = _institution_analysis(db, donation.request_id, donation.institution_id)
    if analysis is not None and analysis.status == Status.COMPLETED:
        analysis.status = int(Status.APPROVED)
        analysis.updated_at = now
    db.delete(donation)
    audit.log_action(
        db,
        institution.id,
        "donation.revert",
        "donation",
        donation_id,
        {"wig_id": donation.wig_id, "request_id": donation.request_id},
    )
    db.commit()
    logger.info("Donation %s reverted; wig %s available again", donation_id, donation.wig_id)


def update_note(
    db: Session, donation_id: int, institution: models.User, note: str | None
) -> models.Donation:
    donation = get_donation_or_404(db, donation_id)
    ensure_can_act(
        institution,
        donation.institution_id,
        detail="You are not allowed to update this donation",
    )
    donation.note = clean_note(note)
    audit.log_action(db, institution.id, "donation.update_note", "donation", donation.id)
    db.commit()
    db.refresh(donation)
    return donation


def get_donation(db: Session, donation_id: int, user: models.User) -> models.Donation:
    donation = get_donation_or_404(db, donation_id)
    if can_act(user.id, user.role, donation.institution_id):
        return donation
    if donation.request is not None and donation.request.requester_id == user.id:
        return donation
    raise PermissionDenied("You are not allowed to view this donation")


def list_donations(
    db: Session,
    user: models.User,
    *,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.query(models.Donation)
    role = user.actor_role
    if role is ActorRole.INSTITUTION:
        query = query.filter(models.Donation.institution_id == user.id)
    elif role is ActorRole.REQUESTER:
        query = query.join(models.WigRequest).filter(models.WigRequest.requester_id == user.id)
    query = query.order_by(models.Donation.created_at.desc(), models.Donation.id.desc())
    return paginate(query, page, limit)


def list_for_request(db: Session, request_id: int, user: models.User) -> list[models.Donation]:
    request = get_request_or_404(db, request_id)
    query = db.query(models.Donation).filter(models.Donation.request_id == request_id)
    allowed = can_act(user.id, user.role, request.requester_id)
    if not allowed and user.actor_role is ActorRole.INSTITUTION:
        allowed = (
            query.filter(models.Donation.institution_id == user.id).first() is not None
        )
    if not allowed:
        raise PermissionDenied("You are not allowed to view these donations")
    return query.order_by(models.Donation.created_at.desc(), models.Donation.id.desc()).all()


def list_for_institution(
    db: Session,
    institution_id: int,
    user: models.User,
    *,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    institution = db.get(models.User, institution_id)
    if institution is None or institution.role != ActorRole.INSTITUTION.value:
        raise NotFound("Institution not found")
    ensure_can_act(user, institution_id, detail="You are not allowed to view these donations")
    query = (
        db.query(models.Donation)
        .filter(models.Donation.institution_id == institution_id)
        .order_by(models.Donation.created_at.desc(), models.Donation.id.desc())
    )
    return paginate(query, page, limit)
