"""Per-institution analysis state machine and the request aggregate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import audit, models, statuses
from ..errors import Conflict, InvalidArgument, InvalidTransition, NotFound, PermissionDenied
from ..events import AnalysisStatusChanged, EventSink, NullSink
from ..rbac import ActorRole, can_act, ensure_can_act, ensure_role
from ..statuses import INSTITUTION_SETTABLE, OPEN, Status
from .common import clean_note, paginate, utcnow
from .requests import get_request_or_404

# purpose: claim/advance/withdraw analyses and summarise them per request
# inputs: SQLAlchemy session, acting institution, optional event sink
# outputs: committed InstitutionAnalysis rows, AnalysisStatusChanged events
# status: stable

logger = logging.getLogger(__name__)

# requests in these states no longer accept new reviewers
_CLOSED_FOR_CLAIMS = frozenset(
    {Status.REJECTED, Status.COMPLETED, Status.CANCELLED_BY_REQUESTER}
)


@dataclass
class RequestAggregate:
    """Derived per-status analysis counts for one request."""

    request_id: int
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def has_analyses(self) -> bool:
        return self.total > 0

    def count(self, status: int) -> int:
        return self.counts.get(statuses.key_of(status), 0)

    def as_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            **self.counts,
            "total": self.total,
            "has_analyses": self.has_analyses,
        }


def get_analysis_or_404(db: Session, analysis_id: int) -> models.InstitutionAnalysis:
    analysis = db.get(models.InstitutionAnalysis, analysis_id)
    if analysis is None:
        raise NotFound("Analysis not found")
    return analysis


def claim(
    db: Session,
    request_id: int,
    institution: models.User,
    note: str | None = None,
) -> models.InstitutionAnalysis:
    """Open this institution's analysis of a request.

    Duplicates are rejected by the (request_id, institution_id) unique
    constraint, so two concurrent claims cannot both commit.
    """

    ensure_role(institution, [ActorRole.INSTITUTION], "Only institutions can review requests")
    notes = clean_note(note, "notes")
    request = get_request_or_404(db, request_id, for_update=True)
    if request.status in _CLOSED_FOR_CLAIMS:
        raise InvalidTransition(
            f"Request is {statuses.name_of(request.status).lower()} and cannot be reviewed"
        )
    analysis = models.InstitutionAnalysis(
        request_id=request.id,
        institution_id=institution.id,
        status=int(Status.PENDING),
        notes=notes,
        created_at=utcnow(),
    )
    db.add(analysis)
    try:
        db.flush()
        audit.log_action(db, institution.id, "analysis.claim", "institution_analysis", analysis.id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("This institution already reviews this request")
    db.refresh(analysis)
    logger.info("Institution %s claimed request %s (analysis %s)", institution.id, request_id, analysis.id)
    return analysis


def advance(
    db: Session,
    analysis_id: int,
    institution: models.User,
    new_status: int,
    note: str | None = None,
    sink: EventSink | None = None,
) -> models.InstitutionAnalysis:
    sink = sink or NullSink()
    analysis = get_analysis_or_404(db, analysis_id)
    ensure_can_act(
        institution,
        analysis.institution_id,
        detail="You are not allowed to update this analysis",
    )
    if statuses.is_terminal(analysis.status):
        raise InvalidTransition(
            f"Analysis is already {statuses.name_of(analysis.status).lower()}"
        )
    if not statuses.is_valid(new_status):
        raise InvalidArgument("Invalid analysis status")
    new_status = int(new_status)
    if new_status not in INSTITUTION_SETTABLE:
        raise InvalidTransition(
            f"Institutions cannot set an analysis to {statuses.name_of(new_status).lower()}"
        )

    notes = clean_note(note, "notes") if note is not None else analysis.notes
    previous = analysis.status
    now = utcnow()
    # compare-and-set: a cancellation cascade committed after our read wins
    moved = (
        db.query(models.InstitutionAnalysis)
        .filter(
            models.InstitutionAnalysis.id == analysis.id,
            models.InstitutionAnalysis.status.in_([int(s) for s in OPEN]),
        )
        .update(
            {"status": new_status, "notes": notes, "updated_at": now},
            synchronize_session=False,
        )
    )
    if moved != 1:
        db.rollback()
        raise InvalidTransition("Analysis is no longer open")

    if new_status != Status.PENDING:
        (
            db.query(models.WigRequest)
            .filter(
                models.WigRequest.id == analysis.request_id,
                models.WigRequest.status == int(Status.PENDING),
            )
            .update(
                {"status": int(Status.UNDER_REVIEW), "updated_at": now},
                synchronize_session=False,
            )
        )

    if previous != new_status:
        sink.emit(
            AnalysisStatusChanged(
                analysis_id=analysis.id,
                request_id=analysis.request_id,
                institution_id=analysis.institution_id,
                new_status=new_status,
            )
        )
    audit.log_action(
        db,
        institution.id,
        "analysis.advance",
        "institution_analysis",
        analysis.id,
        {"from": previous, "to": new_status},
    )
    db.commit()
    db.refresh(analysis)
    logger.info("Analysis %s status %s -> %s", analysis.id, previous, new_status)
    return analysis


def withdraw(db: Session, analysis_id: int, institution: models.User) -> None:
    analysis = get_analysis_or_404(db, analysis_id)
    ensure_can_act(
        institution,
        analysis.institution_id,
        detail="You are not allowed to remove this analysis",
    )
    if analysis.status != Status.PENDING:
        raise InvalidTransition("Only pending analyses can be withdrawn; reject it instead")
    removed = (
        db.query(models.InstitutionAnalysis)
        .filter(
            models.InstitutionAnalysis.id == analysis_id,
            models.InstitutionAnalysis.status == int(Status.PENDING),
        )
        .delete(synchronize_session=False)
    )
    if removed != 1:
        db.rollback()
        raise InvalidTransition("Analysis is no longer pending")
    audit.log_action(db, institution.id, "analysis.withdraw", "institution_analysis", analysis_id)
    db.commit()
    logger.info("Analysis %s withdrawn by institution %s", analysis_id, institution.id)


def summarize(db: Session, request_id: int, user: models.User | None = None) -> RequestAggregate:
    """Bucket the request's analyses by status; a plain snapshot read."""

    request = get_request_or_404(db, request_id)
    if user is not None:
        ensure_can_act(user, request.requester_id, [ActorRole.INSTITUTION])
    counts = {statuses.key_of(status): 0 for status in Status}
    rows = (
        db.query(models.InstitutionAnalysis.status, func.count(models.InstitutionAnalysis.id))
        .filter(models.InstitutionAnalysis.request_id == request_id)
        .group_by(models.InstitutionAnalysis.status)
        .all()
    )
    for status, count in rows:
        key = statuses.key_of(status)
        if key:
            counts[key] += count
    return RequestAggregate(request_id=request_id, counts=counts)


def get_analysis(db: Session, analysis_id: int, user: models.User) -> models.InstitutionAnalysis:
    analysis = get_analysis_or_404(db, analysis_id)
    if can_act(user.id, user.role, analysis.institution_id):
        return analysis
    if analysis.request is not None and analysis.request.requester_id == user.id:
        return analysis
    raise PermissionDenied("You are not allowed to view this analysis")


def list_for_institution(
    db: Session,
    institution: models.User,
    *,
    status: int | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    ensure_role(
        institution,
        [ActorRole.INSTITUTION, ActorRole.ADMIN],
        "Only institutions can list their analyses",
    )
    query = db.query(models.InstitutionAnalysis).filter(
        models.InstitutionAnalysis.institution_id == institution.id
    )
    if status is not None:
        if not statuses.is_valid(status):
            raise InvalidArgument("Invalid analysis status")
        query = query.filter(models.InstitutionAnalysis.status == int(status))
    query = query.order_by(
        models.InstitutionAnalysis.created_at.desc(), models.InstitutionAnalysis.id.desc()
    )
    return paginate(query, page, limit)


def list_for_request(db: Session, request_id: int, user: models.User) -> list[models.InstitutionAnalysis]:
    request = get_request_or_404(db, request_id)
    ensure_can_act(user, request.requester_id, [ActorRole.INSTITUTION])
    return (
        db.query(models.InstitutionAnalysis)
        .filter(models.InstitutionAnalysis.request_id == request_id)
        .order_by(models.InstitutionAnalysis.created_at, models.InstitutionAnalysis.id)
        .all()
    )
