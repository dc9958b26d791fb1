"""End-to-end workflow rules exercised directly against the services."""

import pytest

from wigbank import models
from wigbank.errors import Conflict, FailedPrecondition, InvalidTransition
from wigbank.events import (
    AnalysisStatusChanged,
    DonationCreated,
    RecordingSink,
    RequestCancelled,
)
from wigbank.services import analyses, donations, requests, wigs
from wigbank.statuses import Status
from .conftest import TestingSessionLocal, create_user, db

EVIDENCE = b"scan"


@pytest.fixture
def actors(db):
    return {
        "requester": create_user(db, "requester"),
        "a": create_user(db, "institution", "Institution A"),
        "b": create_user(db, "institution", "Institution B"),
        "c": create_user(db, "institution", "Institution C"),
    }


def _approved_request(db, requester, institution):
    request = requests.submit(db, requester, EVIDENCE)
    analysis = analyses.claim(db, request.id, institution)
    analyses.advance(db, analysis.id, institution, Status.APPROVED)
    return request


def test_scenario_a_summary(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    assert request.status == Status.PENDING
    first = analyses.claim(db, request.id, actors["a"])
    second = analyses.claim(db, request.id, actors["b"])
    assert first.status == second.status == Status.PENDING

    sink = RecordingSink()
    analyses.advance(db, first.id, actors["a"], Status.APPROVED, sink=sink)
    assert [e.new_status for e in sink.of_type(AnalysisStatusChanged)] == [Status.APPROVED]

    aggregate = analyses.summarize(db, request.id)
    assert aggregate.count(Status.APPROVED) == 1
    assert aggregate.count(Status.PENDING) == 1
    assert aggregate.total == 2


def test_scenario_b_cancel_cascade(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    approved = analyses.claim(db, request.id, actors["a"])
    pending = analyses.claim(db, request.id, actors["b"], note="first look")
    reviewing = analyses.claim(db, request.id, actors["c"])
    analyses.advance(db, approved.id, actors["a"], Status.APPROVED)
    analyses.advance(db, reviewing.id, actors["c"], Status.UNDER_REVIEW)

    sink = RecordingSink()
    cancelled = requests.cancel(db, request.id, actors["requester"], sink=sink)
    assert cancelled.status == Status.CANCELLED_BY_REQUESTER
    assert sink.events == [RequestCancelled(request_id=request.id)]

    db.expire_all()
    assert db.get(models.InstitutionAnalysis, approved.id).status == Status.APPROVED
    cascaded = db.get(models.InstitutionAnalysis, pending.id)
    assert cascaded.status == Status.CANCELLED_BY_REQUESTER
    assert cascaded.notes == "first look\ncancelled by requester"
    other = db.get(models.InstitutionAnalysis, reviewing.id)
    assert other.status == Status.CANCELLED_BY_REQUESTER
    assert other.notes == "cancelled by requester"


def test_scenario_c_donation_and_conflict(db, actors):
    request = _approved_request(db, actors["requester"], actors["a"])
    wig = wigs.create_wig(db, actors["a"], "natural", "brown")

    sink = RecordingSink()
    donation = donations.donate(db, wig.id, request.id, actors["a"], sink=sink)
    assert sink.events == [DonationCreated(donation_id=donation.id, request_id=request.id)]
    db.refresh(wig)
    assert wig.available is False

    with pytest.raises(Conflict):
        donations.donate(db, wig.id, request.id, actors["a"])


def test_scenario_d_wig_not_owned(db, actors):
    request = _approved_request(db, actors["requester"], actors["a"])
    wig = wigs.create_wig(db, actors["a"], "natural", "brown")

    with pytest.raises(FailedPrecondition) as exc:
        donations.donate(db, wig.id, request.id, actors["c"])
    assert exc.value.reason == FailedPrecondition.WIG_NOT_OWNED


def test_terminal_freeze(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    analysis = analyses.claim(db, request.id, actors["a"])
    analyses.advance(db, analysis.id, actors["a"], Status.REJECTED)

    for status in (Status.PENDING, Status.UNDER_REVIEW, Status.APPROVED, Status.REJECTED):
        with pytest.raises(InvalidTransition):
            analyses.advance(db, analysis.id, actors["a"], status)
    db.refresh(analysis)
    assert analysis.status == Status.REJECTED


def test_advance_same_status_emits_nothing(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    analysis = analyses.claim(db, request.id, actors["a"])
    sink = RecordingSink()
    analyses.advance(db, analysis.id, actors["a"], Status.PENDING, note="still waiting", sink=sink)
    assert sink.events == []


def test_aggregate_sum_matches_analyses(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    a = analyses.claim(db, request.id, actors["a"])
    b = analyses.claim(db, request.id, actors["b"])
    analyses.claim(db, request.id, actors["c"])
    analyses.advance(db, a.id, actors["a"], Status.UNDER_REVIEW)
    analyses.advance(db, b.id, actors["b"], Status.REJECTED)

    aggregate = analyses.summarize(db, request.id)
    stored = (
        db.query(models.InstitutionAnalysis)
        .filter(models.InstitutionAnalysis.request_id == request.id)
        .count()
    )
    assert aggregate.total == stored == 3
    assert sum(aggregate.counts.values()) == aggregate.total
    assert aggregate.as_dict()["under_review"] == 1


def test_duplicate_claim_from_second_session(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    analyses.claim(db, request.id, actors["a"])

    other = TestingSessionLocal()
    try:
        institution = other.get(models.User, actors["a"].id)
        with pytest.raises(Conflict):
            analyses.claim(other, request.id, institution)
    finally:
        other.close()


def test_stale_advance_loses_to_cancellation(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    analysis = analyses.claim(db, request.id, actors["a"])

    stale = TestingSessionLocal()
    try:
        institution = stale.get(models.User, actors["a"].id)
        # load the analysis while it is still pending
        assert stale.get(models.InstitutionAnalysis, analysis.id).status == Status.PENDING

        requests.cancel(db, request.id, actors["requester"])

        with pytest.raises(InvalidTransition):
            analyses.advance(stale, analysis.id, institution, Status.APPROVED)
    finally:
        stale.close()

    db.expire_all()
    assert db.get(models.InstitutionAnalysis, analysis.id).status == Status.CANCELLED_BY_REQUESTER


def test_concurrent_donations_of_one_wig(db, actors):
    first = _approved_request(db, actors["requester"], actors["a"])
    second = _approved_request(db, actors["requester"], actors["a"])
    wig = wigs.create_wig(db, actors["a"], "synthetic", "red")

    racer = TestingSessionLocal()
    try:
        institution = racer.get(models.User, actors["a"].id)
        donations.donate(db, wig.id, first.id, actors["a"])
        with pytest.raises(Conflict):
            donations.donate(racer, wig.id, second.id, institution)
    finally:
        racer.close()

    assert db.query(models.Donation).filter(models.Donation.wig_id == wig.id).count() == 1
    db.expire_all()
    assert db.get(models.WigRequest, second.id).status == Status.UNDER_REVIEW


def test_failed_donation_leaves_no_trace(db, actors):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    wig = wigs.create_wig(db, actors["a"], "natural", "grey")

    with pytest.raises(FailedPrecondition) as exc:
        donations.donate(db, wig.id, request.id, actors["a"])
    assert exc.value.reason == FailedPrecondition.REQUEST_NOT_APPROVED
    db.rollback()
    db.refresh(wig)
    assert wig.available is True
    assert db.query(models.Donation).filter(models.Donation.wig_id == wig.id).count() == 0


def test_cancel_is_atomic_when_audit_fails(db, actors, monkeypatch):
    request = requests.submit(db, actors["requester"], EVIDENCE)
    analysis = analyses.claim(db, request.id, actors["a"])

    def boom(*args, **kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(requests.audit, "log_action", boom)
    with pytest.raises(RuntimeError):
        requests.cancel(db, request.id, actors["requester"])
    db.rollback()

    db.expire_all()
    assert db.get(models.WigRequest, request.id).status == Status.PENDING
    assert db.get(models.InstitutionAnalysis, analysis.id).status == Status.PENDING
