"""Notification outbox turning workflow events into user notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi.encoders import jsonable_encoder
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from . import models, pubsub, statuses
from .events import (
    AnalysisStatusChanged,
    DonationCreated,
    RequestCancelled,
    RequestStatusChanged,
    WorkflowEvent,
    event_payload,
)
from .statuses import Status

# purpose: durable in-transaction notifications with post-commit pub/sub fan-out
# inputs: workflow events emitted by services before they commit
# outputs: Notification rows plus redis messages on user:{id} channels
# status: stable

logger = logging.getLogger(__name__)

_ANALYSIS_TITLES = {
    Status.PENDING: "Analysis started",
    Status.UNDER_REVIEW: "Analysis in progress",
    Status.APPROVED: "Analysis approved",
    Status.REJECTED: "Analysis rejected",
}

_ANALYSIS_MESSAGES = {
    Status.PENDING: "{institution} started reviewing your wig request",
    Status.UNDER_REVIEW: "{institution} is reviewing your wig request",
    Status.APPROVED: "{institution} approved your wig request!",
    Status.REJECTED: "{institution} rejected your wig request",
}

_REQUEST_TITLES = {
    Status.UNDER_REVIEW: "Request under review",
    Status.APPROVED: "Request approved",
    Status.REJECTED: "Request rejected",
    Status.COMPLETED: "Request completed",
}

_REQUEST_MESSAGES = {
    Status.UNDER_REVIEW: "Your wig request is being reviewed",
    Status.APPROVED: "Your wig request was approved!",
    Status.REJECTED: "Unfortunately your wig request was rejected",
    Status.COMPLETED: "Your wig request was completed successfully!",
}


class NotificationOutbox:
    """Event sink writing notifications inside the caller's transaction.

    Rows are added to the session as events arrive so they commit or roll back
    together with the workflow change. ``flush`` publishes the committed rows
    and must only be awaited after the service has committed.
    """

    def __init__(self, db: Session):
        self.db = db
        self._pending: list[models.Notification] = []

    def emit(self, event: WorkflowEvent) -> None:
        for notification in self._build(event):
            self.db.add(notification)
            self._pending.append(notification)

    async def flush(self) -> int:
        pending, self._pending = self._pending, []
        published = 0
        for notification in pending:
            payload = {
                "type": "notification_created",
                "data": jsonable_encoder(
                    {
                        "id": notification.id,
                        "category": notification.category,
                        "title": notification.title,
                        "message": notification.message,
                        "meta": notification.meta,
                    }
                ),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            try:
                await pubsub.publish_user_event(notification.user_id, payload)
            except (RedisError, OSError) as exc:
                # the row is committed; live delivery is best-effort
                logger.warning(
                    "Could not publish notification %s to user %s: %s",
                    notification.id,
                    notification.user_id,
                    exc,
                )
                continue
            published += 1
        return published

    def _build(self, event: WorkflowEvent) -> list[models.Notification]:
        if isinstance(event, AnalysisStatusChanged):
            return self._analysis_changed(event)
        if isinstance(event, RequestCancelled):
            return self._request_cancelled(event)
        if isinstance(event, RequestStatusChanged):
            return self._request_changed(event)
        if isinstance(event, DonationCreated):
            return self._donation_created(event)
        logger.warning("Ignoring unknown workflow event %r", event)
        return []

    def _analysis_changed(self, event: AnalysisStatusChanged) -> list[models.Notification]:
        request = self.db.get(models.WigRequest, event.request_id)
        if request is None:
            return []
        institution = self.db.get(models.User, event.institution_id)
        institution_name = (institution.name if institution else None) or "An institution"
        status_name = statuses.name_of(event.new_status)
        title = _ANALYSIS_TITLES.get(event.new_status, "Analysis updated")
        template = _ANALYSIS_MESSAGES.get(
            event.new_status, "{institution} set your analysis to {status}"
        )
        return [
            models.Notification(
                user_id=request.requester_id,
                category="analysis",
                title=title,
                message=template.format(institution=institution_name, status=status_name),
                meta={**event_payload(event), "origin_user_id": event.institution_id},
            )
        ]

    def _request_cancelled(self, event: RequestCancelled) -> list[models.Notification]:
        institution_ids = [
            row.institution_id
            for row in self.db.query(models.InstitutionAnalysis.institution_id)
            .filter(models.InstitutionAnalysis.request_id == event.request_id)
            .all()
        ]
        return [
            models.Notification(
                user_id=institution_id,
                category="request",
                title="Request cancelled",
                message=f"Wig request #{event.request_id} was cancelled by the requester",
                meta=event_payload(event),
            )
            for institution_id in institution_ids
        ]

    def _request_changed(self, event: RequestStatusChanged) -> list[models.Notification]:
        request = self.db.get(models.WigRequest, event.request_id)
        if request is None:
            return []
        status_name = statuses.name_of(event.new_status)
        return [
            models.Notification(
                user_id=request.requester_id,
                category="request",
                title=_REQUEST_TITLES.get(event.new_status, "Request updated"),
                message=_REQUEST_MESSAGES.get(
                    event.new_status, f"Your request status changed to: {status_name}"
                ),
                meta=event_payload(event),
            )
        ]

    def _donation_created(self, event: DonationCreated) -> list[models.Notification]:
        request = self.db.get(models.WigRequest, event.request_id)
        if request is None:
            return []
        return [
            models.Notification(
                user_id=request.requester_id,
                category="donation",
                title="Wig donated",
                message="A wig was donated for your request",
                meta=event_payload(event),
            )
        ]
