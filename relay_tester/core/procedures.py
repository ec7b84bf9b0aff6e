"""Capability test procedures.

Every NIP is tested with the same template:

1. Open the notification stream and build the capability's filter
2. Establish the subscription
3. Perform the capability's action (always attempted)
4. Verify the relay's traffic, if there is a subscription and an event
   to wait for
5. Run post-action checks, if the action succeeded
6. Close the subscription, if one was established, whatever happened
7. Turn the accumulated log into a TestReport

An unexpected error in steps 1-5 is logged as ProcedureAborted after
whatever was already logged, and teardown still runs.

Capabilities only differ in their filter kind, their action and their
optional post-action checks.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import ClassVar

from .logger import (
    ActionNotImplemented,
    DeletedEventStillServed,
    FailedToFetchEvents,
    FailedToPublishEvent,
    ProcedureAborted,
    PublishedEvent,
    ReportLogger,
)
from .models import (
    ActionResult,
    EventKind,
    Filter,
    InternalSubscriptionId,
    Nip,
    Subscription,
    TransportError,
)
from .ports import RelayPort
from .report import TestReport
from .subscriptions import close_subscription, establish_subscription
from .verifier import MessageVerifier

logger = logging.getLogger(__name__)

CONTENT_PREFIX = "nostr-relay-tester"


class CapabilityProcedure(ABC):
    """Template for testing one NIP against a connected relay."""

    nip: ClassVar[Nip]
    subscription_name: ClassVar[str]

    def __init__(
        self,
        relay: RelayPort,
        verify_timeout: float | None = None,
        fetch_timeout: float = 5.0,
    ):
        self.relay = relay
        self.verify_timeout = verify_timeout
        self.fetch_timeout = fetch_timeout

    @property
    def expected_kind(self) -> int:
        return self.nip.event_kind

    def new_internal_id(self) -> InternalSubscriptionId:
        """Subscription token scoped to this invocation."""
        purpose = self.subscription_name.replace(" ", "_")
        return InternalSubscriptionId(f"{self.nip.value}-{purpose}-{uuid.uuid4().hex[:8]}")

    def build_filter(self) -> Filter:
        """Activity authored by our identity, of the capability's kind."""
        return Filter(authors=(self.relay.public_key,), kinds=(self.expected_kind,))

    @abstractmethod
    async def perform_action(self, logger: ReportLogger) -> ActionResult | None:
        """Act on the relay. Returns None when there is nothing to wait for."""

    async def post_action_checks(self, logger: ReportLogger, action: ActionResult) -> None:
        """Extra verification of persisted state after the action."""

    async def run(self) -> TestReport:
        """Execute the full procedure and return the capability's report."""
        report_logger = ReportLogger(self.nip)
        logger.info(f"{self.nip.value}: testing {self.nip.title}")

        stream = self.relay.notifications()
        subscription: Subscription | None = None
        try:
            subscription = await establish_subscription(
                self.subscription_name,
                self.relay,
                self.new_internal_id(),
                self.build_filter(),
                report_logger,
            )

            action = await self.perform_action(report_logger)

            if subscription is not None and action is not None:
                verifier = MessageVerifier(
                    logger=report_logger,
                    subscription=subscription,
                    target_event_id=action.target_event_id,
                    author=self.relay.public_key,
                    expected_kind=self.expected_kind,
                    acknowledged_ids=action.published_ids,
                    timeout=self.verify_timeout,
                )
                outcome = await verifier.verify(stream)
                logger.debug(f"{self.nip.value}: verification ended with {outcome.value}")

            if action is not None:
                await self.post_action_checks(report_logger, action)
        except Exception as e:
            logger.error(f"{self.nip.value}: test procedure failed: {e}", exc_info=True)
            report_logger.log(ProcedureAborted(e))
        finally:
            if subscription is not None and subscription.external_id is not None:
                await close_subscription(
                    self.subscription_name,
                    self.relay,
                    subscription.external_id,
                    report_logger,
                )
            await stream.aclose()

        return report_logger.into_report()

    async def publish(
        self,
        logger: ReportLogger,
        kind: int,
        content: str,
        tags: list[list[str]] | None = None,
    ) -> str | None:
        """Publish an event, logging the outcome. Returns its id on success."""
        try:
            event_id = await self.relay.publish(kind, content, tags)
        except TransportError as error:
            logger.log(FailedToPublishEvent(error))
            return None
        logger.log(PublishedEvent(event_id))
        return event_id


class Nip01Procedure(CapabilityProcedure):
    """Publish a text note and expect it back on a subscription."""

    nip = Nip.NIP01
    subscription_name = "new events"

    async def perform_action(self, logger: ReportLogger) -> ActionResult | None:
        event_id = await self.publish(logger, EventKind.TEXT_NOTE, f"{CONTENT_PREFIX}: nip01")
        if event_id is None:
            return None
        return ActionResult(target_event_id=event_id, published_ids=(event_id,))


class Nip02Procedure(CapabilityProcedure):
    """Contact list subscription.

    Publishing a contact list and verifying the stored replacement is
    not implemented yet; the action only records that gap.
    """

    nip = Nip.NIP02
    subscription_name = "contact list"

    async def perform_action(self, logger: ReportLogger) -> ActionResult | None:
        logger.log(
            ActionNotImplemented(
                self.nip,
                "publishing a contact list and fetching the replaced list",
            )
        )
        return None


class Nip09Procedure(CapabilityProcedure):
    """Delete a freshly published note.

    The deletion request must be echoed on a kind 5 subscription, and the
    relay must stop serving the deleted note afterwards.
    """

    nip = Nip.NIP09
    subscription_name = "deletion"

    def __init__(
        self,
        relay: RelayPort,
        verify_timeout: float | None = None,
        fetch_timeout: float = 5.0,
    ):
        super().__init__(relay, verify_timeout, fetch_timeout)
        self._deleted_event_id: str | None = None

    async def perform_action(self, logger: ReportLogger) -> ActionResult | None:
        note_id = await self.publish(
            logger, EventKind.TEXT_NOTE, f"{CONTENT_PREFIX}: nip09 note to delete"
        )
        if note_id is None:
            return None

        deletion_id = await self.publish(
            logger,
            EventKind.DELETION,
            f"{CONTENT_PREFIX}: nip09 deletion",
            tags=[["e", note_id]],
        )
        if deletion_id is None:
            return None

        self._deleted_event_id = note_id
        return ActionResult(target_event_id=deletion_id, published_ids=(note_id, deletion_id))

    async def post_action_checks(self, logger: ReportLogger, action: ActionResult) -> None:
        if self._deleted_event_id is None:
            return
        query = Filter(ids=(self._deleted_event_id,))
        try:
            events = await self.relay.fetch_events([query], self.fetch_timeout)
        except TransportError as error:
            logger.log(FailedToFetchEvents(error))
            return

        if any(query.matches(event) for event in events):
            logger.log(DeletedEventStillServed(self._deleted_event_id, action.target_event_id))


PROCEDURES: dict[Nip, type[CapabilityProcedure]] = {
    Nip.NIP01: Nip01Procedure,
    Nip.NIP02: Nip02Procedure,
    Nip.NIP09: Nip09Procedure,
}


def procedure_for(
    nip: Nip,
    relay: RelayPort,
    verify_timeout: float | None = None,
    fetch_timeout: float = 5.0,
) -> CapabilityProcedure:
    """Instantiate the test procedure owned by ``nip``."""
    return PROCEDURES[nip](relay, verify_timeout=verify_timeout, fetch_timeout=fetch_timeout)
