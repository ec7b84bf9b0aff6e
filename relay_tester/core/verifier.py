"""Message verification for capability tests.

The verifier consumes the relay's notification stream after an action
and checks every message against what the protocol requires, until the
action's event is echoed back on the subscription under test.

Termination:
- SUCCESS: the target event arrived on our subscription
- CLOSED: the relay closed our subscription
- TIMED_OUT: the deadline expired first
- EXHAUSTED: the stream ended first
"""

import asyncio
import logging
from collections.abc import Iterable
from enum import Enum

from .logger import (
    AcknowledgedEvent,
    BadEventAuthor,
    BadEventKind,
    BadEventTimestamp,
    NotificationStreamEnded,
    ReceivedEndOfStoredEvents,
    ReceivedExpectedEvent,
    ReceivedNotice,
    RejectedEvent,
    ReportLogger,
    TimedOutWaitingForEvent,
    UnexpectedCountEvent,
    UnexpectedOkEvent,
    UnexpectedlyClosedSubscription,
    UnknownSubscriptionClosed,
    UnknownSubscriptionId,
)
from .models import (
    ClosedMessage,
    CountMessage,
    EndOfStoredEventsMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    Subscription,
    SubscriptionId,
)
from .ports import NotificationStream

logger = logging.getLogger(__name__)


class VerificationOutcome(Enum):
    """How the verification loop ended."""

    SUCCESS = "success"
    CLOSED = "closed"
    TIMED_OUT = "timed_out"
    EXHAUSTED = "exhausted"


class MessageVerifier:
    """Checks relay traffic for one subscription and one expected event.

    Anomalies are logged and observation continues; only the expected
    event, the closing of our subscription, the deadline or the end of
    the stream stop the loop.
    """

    def __init__(
        self,
        logger: ReportLogger,
        subscription: Subscription,
        target_event_id: str,
        author: str,
        expected_kind: int,
        acknowledged_ids: Iterable[str] = (),
        timeout: float | None = None,
    ):
        """Initialize the verifier.

        Args:
            logger: Report logger of the running capability test.
            subscription: Established subscription under test.
            target_event_id: Event whose echo completes the test.
            author: Public key that authored the action's events.
            expected_kind: Kind every delivered event must have.
            acknowledged_ids: Other events published by the same action;
                OK messages for them are not unexpected.
            timeout: Overall deadline in seconds, None to wait forever.
        """
        if subscription.external_id is None:
            raise ValueError("subscription has not been established")
        self.logger = logger
        self.subscription = subscription
        self.subscription_id: SubscriptionId = subscription.external_id
        self.target_event_id = target_event_id
        self.author = author
        self.expected_kind = expected_kind
        self.acknowledged_ids = frozenset(acknowledged_ids) | {target_event_id}
        self.timeout = timeout

    async def verify(self, stream: NotificationStream) -> VerificationOutcome:
        """Consume ``stream`` until the loop reaches a terminal condition."""
        timeout = self.timeout
        loop = asyncio.get_running_loop()
        started = loop.time()

        while True:
            if timeout is None:
                message = await self._next_message(stream)
            else:
                remaining = timeout - (loop.time() - started)
                try:
                    if remaining <= 0:
                        raise asyncio.TimeoutError
                    message = await asyncio.wait_for(
                        self._next_message(stream), timeout=remaining
                    )
                except asyncio.TimeoutError:
                    self.logger.log(
                        TimedOutWaitingForEvent(
                            self.subscription.name, self.target_event_id, timeout
                        )
                    )
                    return VerificationOutcome.TIMED_OUT

            if message is None:
                self.logger.log(
                    NotificationStreamEnded(self.subscription.name, self.target_event_id)
                )
                return VerificationOutcome.EXHAUSTED

            outcome = self.handle(message)
            if outcome is not None:
                return outcome

    @staticmethod
    async def _next_message(stream: NotificationStream) -> RelayMessage | None:
        try:
            return await stream.__anext__()
        except StopAsyncIteration:
            return None

    def handle(self, message: RelayMessage) -> VerificationOutcome | None:
        """Classify one message. Returns an outcome if the loop must stop."""
        if isinstance(message, EventMessage):
            return self._handle_event(message)
        if isinstance(message, ClosedMessage):
            return self._handle_closed(message)
        if isinstance(message, NoticeMessage):
            self.logger.log(ReceivedNotice(message.message))
        elif isinstance(message, OkMessage):
            self._handle_ok(message)
        elif isinstance(message, EndOfStoredEventsMessage):
            self._is_targeted(message.subscription_id, message)
            self.logger.log(ReceivedEndOfStoredEvents(message.subscription_id))
        elif isinstance(message, CountMessage):
            self._is_targeted(message.subscription_id, message)
            self.logger.log(UnexpectedCountEvent(message.subscription_id, message.count))
        else:
            logger.debug(f"ignoring unrecognized relay message: {message}")
        return None

    def _is_targeted(self, subscription_id: SubscriptionId, message: RelayMessage) -> bool:
        """Log messages aimed at another subscription. Never fatal."""
        if subscription_id == self.subscription_id:
            return True
        self.logger.log(
            UnknownSubscriptionId(
                expected_id=self.subscription_id,
                subscription_id=subscription_id,
                message=message,
            )
        )
        return False

    def _handle_event(self, message: EventMessage) -> VerificationOutcome | None:
        event = message.event
        targeted = self._is_targeted(message.subscription_id, message)

        if targeted and event.id == self.target_event_id:
            self.logger.log(ReceivedExpectedEvent(self.subscription.name, event))
            return VerificationOutcome.SUCCESS

        if event.kind != self.expected_kind:
            self.logger.log(BadEventKind(expected_kind=self.expected_kind, event=event))
        if event.pubkey != self.author:
            self.logger.log(BadEventAuthor(expected_author=self.author, event=event))
        if event.created_at < self.subscription.created_at:
            self.logger.log(
                BadEventTimestamp(
                    filter_since_timestamp=self.subscription.created_at, event=event
                )
            )
        return None

    def _handle_closed(self, message: ClosedMessage) -> VerificationOutcome | None:
        if message.subscription_id == self.subscription_id:
            self.logger.log(
                UnexpectedlyClosedSubscription(
                    name=self.subscription.name,
                    subscription_id=message.subscription_id,
                    message=message.message,
                )
            )
            return VerificationOutcome.CLOSED
        self.logger.log(UnknownSubscriptionClosed(message.subscription_id, message.message))
        return None

    def _handle_ok(self, message: OkMessage) -> None:
        if message.event_id not in self.acknowledged_ids:
            self.logger.log(
                UnexpectedOkEvent(message.event_id, message.accepted, message.message)
            )
        elif message.accepted:
            self.logger.log(AcknowledgedEvent(message.event_id, message.message))
        else:
            self.logger.log(RejectedEvent(message.event_id, message.message))
