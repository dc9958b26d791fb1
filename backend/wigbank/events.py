"""Workflow events emitted toward the notification collaborator."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Protocol, Union

# purpose: discrete, delivery-agnostic triggers raised by the workflow services
# status: stable


@dataclass(frozen=True)
class RequestCancelled:
    request_id: int
    type: str = "request.cancelled"


@dataclass(frozen=True)
class RequestStatusChanged:
    request_id: int
    new_status: int
    type: str = "request.status_changed"


@dataclass(frozen=True)
class AnalysisStatusChanged:
    analysis_id: int
    request_id: int
    institution_id: int
    new_status: int
    type: str = "analysis.status_changed"


@dataclass(frozen=True)
class DonationCreated:
    donation_id: int
    request_id: int
    type: str = "donation.created"


WorkflowEvent = Union[RequestCancelled, RequestStatusChanged, AnalysisStatusChanged, DonationCreated]


class EventSink(Protocol):
    def emit(self, event: WorkflowEvent) -> None: ...


class NullSink:
    """Sink used when a caller does not care about events."""

    def emit(self, event: WorkflowEvent) -> None:
        return None


class RecordingSink:
    """Keep emitted events in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[WorkflowEvent]:
        return [event for event in self.events if isinstance(event, event_type)]


def event_payload(event: WorkflowEvent) -> dict:
    return asdict(event)
