"""Wig request lifecycle: submission, edits, cancellation cascade and removal."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import audit, models, statuses
from ..errors import InvalidArgument, InvalidTransition, NotFound, PermissionDenied
from ..events import EventSink, NullSink, RequestCancelled, RequestStatusChanged
from ..rbac import ActorRole, ensure_can_act, ensure_role
from ..statuses import OPEN, Status
from .common import clean_note, paginate, utcnow

# purpose: own every write to wig_requests, including the cancellation cascade
# inputs: SQLAlchemy session, acting user, optional event sink
# outputs: committed WigRequest rows and workflow events
# status: stable

logger = logging.getLogger(__name__)

CANCEL_NOTE = "cancelled by requester"
MAX_EVIDENCE_BYTES = int(os.getenv("MAX_EVIDENCE_BYTES", str(5 * 1024 * 1024)))

_DATA_URI = re.compile(r"^data:([A-Za-z0-9.+/-]+);base64,(.+)$", re.DOTALL)

# analysis outcomes that turn a request into audit history
_DECIDED = (int(Status.APPROVED), int(Status.REJECTED), int(Status.COMPLETED))


def get_request_or_404(db: Session, request_id: int, *, for_update: bool = False) -> models.WigRequest:
    query = db.query(models.WigRequest).filter(models.WigRequest.id == request_id)
    if for_update:
        query = query.with_for_update()
    request = query.first()
    if request is None:
        raise NotFound("Request not found")
    return request


def decode_data_uri(value: str) -> tuple[bytes, str]:
    """Split a ``data:<mime>;base64,<payload>`` URI into bytes and content type."""

    match = _DATA_URI.match(value or "")
    if not match:
        raise InvalidArgument("Invalid evidence format")
    try:
        content = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgument("Invalid evidence format")
    return content, match.group(1)


def submit(
    db: Session,
    requester: models.User,
    evidence: bytes | None,
    note: str | None = None,
    content_type: str | None = None,
) -> models.WigRequest:
    ensure_role(requester, [ActorRole.REQUESTER], "Only requesters can submit wig requests")
    if not evidence:
        raise InvalidArgument("Medical evidence is required")
    if len(evidence) > MAX_EVIDENCE_BYTES:
        raise InvalidArgument("Medical evidence is too large")
    request = models.WigRequest(
        requester_id=requester.id,
        status=int(Status.PENDING),
        note=clean_note(note),
        evidence=evidence,
        evidence_content_type=content_type or "application/octet-stream",
        created_at=utcnow(),
    )
    db.add(request)
    db.flush()
    audit.log_action(db, requester.id, "request.submit", "wig_request", request.id)
    db.commit()
    db.refresh(request)
    logger.info("Request %s submitted by user %s", request.id, requester.id)
    return request


def get_request(db: Session, request_id: int, user: models.User) -> models.WigRequest:
    request = get_request_or_404(db, request_id)
    ensure_can_act(
        user,
        request.requester_id,
        [ActorRole.INSTITUTION],
        "You are not allowed to access this request",
    )
    return request


def get_evidence(db: Session, request_id: int, user: models.User) -> tuple[bytes, str]:
    request = get_request(db, request_id, user)
    if not request.evidence:
        raise NotFound("Medical evidence not found")
    return request.evidence, request.evidence_content_type or "application/octet-stream"


def list_requests(
    db: Session,
    user: models.User,
    *,
    status: int | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    ensure_can_act(user, None, [ActorRole.INSTITUTION], "Only institutions can browse requests")
    query = db.query(models.WigRequest)
    if status is not None:
        if not statuses.is_valid(status):
            raise InvalidArgument("Invalid request status")
        query = query.filter(models.WigRequest.status == int(status))
    query = query.order_by(models.WigRequest.created_at.desc(), models.WigRequest.id.desc())
    return paginate(query, page, limit)


def list_requests_for_user(
    db: Session,
    user: models.User,
    requester_id: int,
    *,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    target = db.get(models.User, requester_id)
    if target is None:
        raise NotFound("User not found")
    if target.role != ActorRole.REQUESTER.value:
        raise InvalidArgument("The given user is not a requester")
    ensure_can_act(user, requester_id, [ActorRole.INSTITUTION])
    query = (
        db.query(models.WigRequest)
        .filter(models.WigRequest.requester_id == requester_id)
        .order_by(models.WigRequest.created_at.desc(), models.WigRequest.id.desc())
    )
    return paginate(query, page, limit)


def update_note(db: Session, request_id: int, user: models.User, note: str | None) -> models.WigRequest:
    request = get_request_or_404(db, request_id)
    ensure_can_act(user, request.requester_id, detail="Only the requester can edit this request")
    request.note = clean_note(note)
    request.updated_at = utcnow()
    audit.log_action(db, user.id, "request.update_note", "wig_request", request.id)
    db.commit()
    db.refresh(request)
    return request


def cancel(
    db: Session,
    request_id: int,
    user: models.User,
    sink: EventSink | None = None,
) -> models.WigRequest:
    """Cancel a request and force every open analysis to CancelledByRequester.

    Both writes share one transaction, so no reader ever sees the request
    cancelled while one of its analyses is still open.
    """

    sink = sink or NullSink()
    request = get_request_or_404(db, request_id, for_update=True)
    ensure_can_act(user, request.requester_id, detail="Only the requester can cancel this request")
    if statuses.is_terminal(request.status):
        raise InvalidTransition(f"Request is already {statuses.name_of(request.status).lower()}")

    now = utcnow()
    open_states = [int(s) for s in OPEN]
    moved = (
        db.query(models.WigRequest)
        .filter(models.WigRequest.id == request_id, models.WigRequest.status.in_(open_states))
        .update(
            {"status": int(Status.CANCELLED_BY_REQUESTER), "updated_at": now},
            synchronize_session=False,
        )
    )
    if moved != 1:
        db.rollback()
        raise InvalidTransition("Request changed while cancelling; reload and retry")

    notes = models.InstitutionAnalysis.notes
    cascaded = (
        db.query(models.InstitutionAnalysis)
        .filter(
            models.InstitutionAnalysis.request_id == request_id,
            models.InstitutionAnalysis.status.in_(open_states),
        )
        .update(
            {
                "status": int(Status.CANCELLED_BY_REQUESTER),
                "notes": sa.func.coalesce(notes.concat("\n"), "").concat(CANCEL_NOTE),
                "updated_at": now,
            },
            synchronize_session=False,
        )
    )
    sink.emit(RequestCancelled(request_id=request_id))
    audit.log_action(
        db,
        user.id,
        "request.cancel",
        "wig_request",
        request_id,
        {"cascaded_analyses": cascaded},
    )
    db.commit()
    db.refresh(request)
    logger.info("Request %s cancelled; %s open analyses cascaded", request_id, cascaded)
    return request


def delete(db: Session, request_id: int, user: models.User) -> None:
    request = get_request_or_404(db, request_id, for_update=True)
    ensure_can_act(user, request.requester_id, detail="Only the requester can delete this request")
    if request.status not in OPEN:
        raise InvalidTransition(
            "Approved, rejected, completed or cancelled requests cannot be deleted"
        )
    decided = (
        db.query(models.InstitutionAnalysis.id)
        .filter(
            models.InstitutionAnalysis.request_id == request_id,
            models.InstitutionAnalysis.status.in_(_DECIDED),
        )
        .first()
    )
    if decided is not None:
        raise InvalidTransition("An institution already decided on this request; cancel it instead")
    donated = (
        db.query(models.Donation.id)
        .filter(models.Donation.request_id == request_id)
        .first()
    )
    if donated is not None:
        raise InvalidTransition("Request has a donation; cancel it instead")
    (
        db.query(models.InstitutionAnalysis)
        .filter(models.InstitutionAnalysis.request_id == request_id)
        .delete(synchronize_session=False)
    )
    db.delete(request)
    audit.log_action(db, user.id, "request.delete", "wig_request", request_id)
    db.commit()
    logger.info("Request %s deleted by user %s", request_id, user.id)


def direct_status_update(
    db: Session,
    request_id: int,
    user: models.User,
    new_status: int,
    note: str | None = None,
    sink: EventSink | None = None,
) -> models.WigRequest:
    """Set a request status outside the per-institution analyses."""

    sink = sink or NullSink()
    if not statuses.is_valid(new_status):
        raise InvalidArgument("Invalid request status")
    new_status = int(new_status)
    request = get_request_or_404(db, request_id, for_update=True)

    if user.actor_role is ActorRole.REQUESTER:
        if request.requester_id != user.id:
            raise PermissionDenied("You are not allowed to change this request")
        if new_status != Status.CANCELLED_BY_REQUESTER:
            raise PermissionDenied("Requesters can only cancel their requests")
        return cancel(db, request_id, user, sink=sink)

    ensure_can_act(user, None, [ActorRole.INSTITUTION], "You are not allowed to change this request")
    if new_status == Status.CANCELLED_BY_REQUESTER:
        raise InvalidTransition("Only the requester can cancel a request")
    if request.status == Status.CANCELLED_BY_REQUESTER:
        raise InvalidTransition("Cancelled requests cannot change status")

    previous = request.status
    request.status = new_status
    if note is not None:
        request.note = clean_note(note)
    request.updated_at = utcnow()
    if previous != new_status:
        sink.emit(RequestStatusChanged(request_id=request.id, new_status=new_status))
    audit.log_action(
        db,
        user.id,
        "request.direct_status",
        "wig_request",
        request.id,
        {"from": previous, "to": new_status},
    )
    db.commit()
    db.refresh(request)
    logger.info("Request %s status %s -> %s by user %s", request.id, previous, new_status, user.id)
    return request
