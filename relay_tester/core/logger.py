"""Structured event log for a single capability test.

Every observation made while testing a NIP is expressed as a LogEvent.
The ReportLogger renders each event as a log line and keeps the ones
classified as errors; at the end of the test it is turned into the
capability's TestReport.

Classification policy:
- anomalies concerning the test's own subscription, and messages that
  are abnormal in themselves (e.g. an OK for an event never published),
  are errors;
- relay advisories (NOTICE) and known gaps are warnings;
- lifecycle confirmations are informational.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar, TypeAlias

from .models import Event, Nip, RelayMessage, SubscriptionId
from .report import Diagnostic, Failed, Passed, TestReport

logger = logging.getLogger(__name__)


def describe_event(event: Event) -> str:
    """Compact one-line rendering of an event for diagnostics."""
    return (
        f"event {event.id} (kind {event.kind}, author {event.pubkey}, "
        f"created_at {event.created_at})"
    )


class _LogEventBase:
    level: ClassVar[int] = logging.INFO

    def render(self) -> str:
        raise NotImplementedError

    @property
    def is_error(self) -> bool:
        return self.level >= logging.ERROR


# ============================================================================
# Subscription lifecycle
# ============================================================================


@dataclass(frozen=True)
class EstablishedSubscription(_LogEventBase):
    name: str
    subscription_id: SubscriptionId

    def render(self) -> str:
        return f"successfully established {self.name} subscription with id {self.subscription_id}"


@dataclass(frozen=True)
class FailedToEstablishSubscription(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    name: str
    error: Exception

    def render(self) -> str:
        return f"failed to create {self.name} subscription: {self.error}"


@dataclass(frozen=True)
class ClosedSubscription(_LogEventBase):
    name: str
    subscription_id: SubscriptionId

    def render(self) -> str:
        return f"successfully closed {self.name} subscription: {self.subscription_id}"


@dataclass(frozen=True)
class FailedToCloseSubscription(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    name: str
    subscription_id: SubscriptionId
    error: Exception

    def render(self) -> str:
        return f'failed to close {self.name} subscription "{self.subscription_id}": {self.error}'


# ============================================================================
# Actions
# ============================================================================


@dataclass(frozen=True)
class PublishedEvent(_LogEventBase):
    event_id: str

    def render(self) -> str:
        return f"successfully published event: {self.event_id}"


@dataclass(frozen=True)
class FailedToPublishEvent(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    error: Exception

    def render(self) -> str:
        return f"failed to publish event: {self.error}"


@dataclass(frozen=True)
class ActionNotImplemented(_LogEventBase):
    """The capability's action is a known gap; nothing was sent."""

    level: ClassVar[int] = logging.WARNING

    nip: Nip
    description: str

    def render(self) -> str:
        return f"{self.nip.value} action not implemented, skipping: {self.description}"


@dataclass(frozen=True)
class FailedToFetchEvents(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    error: Exception

    def render(self) -> str:
        return f"failed to fetch stored events: {self.error}"


@dataclass(frozen=True)
class DeletedEventStillServed(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    event_id: str
    deletion_id: str

    def render(self) -> str:
        return (
            f'relay still serves event "{self.event_id}" '
            f'after deletion request "{self.deletion_id}"'
        )


# ============================================================================
# Relay messages
# ============================================================================


@dataclass(frozen=True)
class ReceivedExpectedEvent(_LogEventBase):
    name: str
    event: Event

    def render(self) -> str:
        return f"received {self.name} event from subscription: {describe_event(self.event)}"


@dataclass(frozen=True)
class ReceivedEndOfStoredEvents(_LogEventBase):
    subscription_id: SubscriptionId

    def render(self) -> str:
        return f"received EOSE event for subscription: {self.subscription_id}"


@dataclass(frozen=True)
class ReceivedNotice(_LogEventBase):
    level: ClassVar[int] = logging.WARNING

    message: str

    def render(self) -> str:
        return f"received NOTICE event from relay: {self.message}"


@dataclass(frozen=True)
class AcknowledgedEvent(_LogEventBase):
    event_id: str
    message: str

    def render(self) -> str:
        suffix = f": {self.message}" if self.message else ""
        return f'relay accepted event "{self.event_id}"{suffix}'


@dataclass(frozen=True)
class RejectedEvent(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    event_id: str
    message: str

    def render(self) -> str:
        return f'relay rejected event "{self.event_id}": {self.message}'


@dataclass(frozen=True)
class UnexpectedOkEvent(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    event_id: str
    accepted: bool
    message: str

    def render(self) -> str:
        return (
            f'received unexpected OK event for event "{self.event_id}": '
            f"accepted={self.accepted} message={self.message!r}"
        )


@dataclass(frozen=True)
class UnexpectedCountEvent(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    subscription_id: SubscriptionId
    count: int

    def render(self) -> str:
        return f'received unexpected COUNT event for subscription "{self.subscription_id}": {self.count}'


@dataclass(frozen=True)
class UnknownSubscriptionClosed(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    subscription_id: SubscriptionId
    message: str

    def render(self) -> str:
        return f'relay closed unknown subscription "{self.subscription_id}": {self.message}'


@dataclass(frozen=True)
class UnknownSubscriptionId(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    expected_id: SubscriptionId
    subscription_id: SubscriptionId
    message: RelayMessage

    def render(self) -> str:
        return (
            f"received message with subscription id {self.subscription_id} "
            f"(expected {self.expected_id}): {type(self.message).__name__}"
        )


@dataclass(frozen=True)
class BadEventAuthor(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    expected_author: str
    event: Event

    def render(self) -> str:
        return (
            f"received event with author {self.event.pubkey} "
            f"(expected {self.expected_author}): {describe_event(self.event)}"
        )


@dataclass(frozen=True)
class BadEventTimestamp(_LogEventBase):
    """Event timestamp is lower than the since field of the filter."""

    level: ClassVar[int] = logging.ERROR

    filter_since_timestamp: int
    event: Event

    def render(self) -> str:
        return (
            f"received event with timestamp {self.event.created_at} "
            f"(expected >= {self.filter_since_timestamp}): {describe_event(self.event)}"
        )


@dataclass(frozen=True)
class BadEventKind(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    expected_kind: int
    event: Event

    def render(self) -> str:
        return (
            f"received event of kind {self.event.kind} "
            f"(expected {self.expected_kind}): {describe_event(self.event)}"
        )


@dataclass(frozen=True)
class UnexpectedlyClosedSubscription(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    name: str
    subscription_id: SubscriptionId
    message: str

    def render(self) -> str:
        return (
            f'relay closed {self.name} subscription "{self.subscription_id}" '
            f"unexpectedly: {self.message}"
        )


# ============================================================================
# Verification outcomes
# ============================================================================


@dataclass(frozen=True)
class TimedOutWaitingForEvent(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    name: str
    event_id: str
    timeout_seconds: float

    def render(self) -> str:
        return (
            f'timed out after {self.timeout_seconds:g}s waiting for event "{self.event_id}" '
            f"on {self.name} subscription"
        )


@dataclass(frozen=True)
class NotificationStreamEnded(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    name: str
    event_id: str

    def render(self) -> str:
        return (
            f'relay connection ended before event "{self.event_id}" '
            f"was received on {self.name} subscription"
        )


@dataclass(frozen=True)
class ProcedureAborted(_LogEventBase):
    level: ClassVar[int] = logging.ERROR

    error: Exception

    def render(self) -> str:
        return f"test aborted by unexpected error: {type(self.error).__name__}: {self.error}"


LogEvent: TypeAlias = (
    EstablishedSubscription
    | FailedToEstablishSubscription
    | ClosedSubscription
    | FailedToCloseSubscription
    | PublishedEvent
    | FailedToPublishEvent
    | ActionNotImplemented
    | FailedToFetchEvents
    | DeletedEventStillServed
    | ReceivedExpectedEvent
    | ReceivedEndOfStoredEvents
    | ReceivedNotice
    | AcknowledgedEvent
    | RejectedEvent
    | UnexpectedOkEvent
    | UnexpectedCountEvent
    | UnknownSubscriptionClosed
    | UnknownSubscriptionId
    | BadEventAuthor
    | BadEventTimestamp
    | BadEventKind
    | UnexpectedlyClosedSubscription
    | TimedOutWaitingForEvent
    | NotificationStreamEnded
    | ProcedureAborted
)


class ReportLogger:
    """Accumulates the errors of one capability test.

    Diagnostics are append-only: once an error is logged the resulting
    report is failed.
    """

    def __init__(self, nip: Nip):
        self.nip = nip
        self._errors: list[Diagnostic] = []

    def log(self, event: LogEvent) -> None:
        """Send the event to the log. Store it afterwards if it's an error."""
        message = event.render()
        logger.log(event.level, f"{self.nip.value}: {message}")
        if event.is_error:
            self._errors.append(Diagnostic(message=message, event=event))

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(self._errors)

    def into_report(self) -> TestReport:
        """Derive the capability's report from the errors logged so far."""
        if not self._errors:
            return Passed(self.nip)
        return Failed(nip=self.nip, errors=tuple(self._errors))
