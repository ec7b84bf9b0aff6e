"""Port interfaces for the relay conformance tester.

These abstract base classes define the boundaries between core
protocol logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - RelayPort: Subscribe, publish, close and receive relay traffic
   - NotificationStream: Ordered view of the relay's inbound messages
   - ReportSinkPort: Present final test reports to the user
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from .models import (
    ActiveSubscription,
    Event,
    Filter,
    InternalSubscriptionId,
    RelayMessage,
    SubscriptionId,
)
from .report import TestReport


class NotificationStream(ABC):
    """Lazy, unbounded sequence of messages received from the relay.

    A stream sees every message that arrives after it was opened,
    regardless of which subscription the message belongs to. Consumers
    must tolerate unrelated traffic.

    Iteration ends (``StopAsyncIteration``) when the connection is gone.
    """

    def __aiter__(self) -> "NotificationStream":
        return self

    @abstractmethod
    async def __anext__(self) -> RelayMessage:
        """Wait for the next relay message.

        Raises:
            StopAsyncIteration: If the stream is exhausted.
        """

    @abstractmethod
    async def aclose(self) -> None:
        """Detach the stream. Idempotent."""


class RelayPort(ABC):
    """Port for talking to the relay under test.

    Adapters own connection establishment, message framing and signing
    of outgoing events. Every failing call raises TransportError; the
    core never retries.
    """

    @property
    @abstractmethod
    def url(self) -> str:
        """Address of the relay."""

    @property
    @abstractmethod
    def public_key(self) -> str:
        """Hex public key that signs every published event."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the session with the relay.

        Raises:
            TransportError: If the relay cannot be reached.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session. Open notification streams become exhausted."""

    @abstractmethod
    async def subscribe(
        self,
        internal_id: InternalSubscriptionId,
        filters: Sequence[Filter],
        options: Mapping[str, Any] | None = None,
    ) -> None:
        """Send a subscription request registered under ``internal_id``.

        The relay-side id is chosen by the adapter and can be looked up
        through active_subscriptions().

        Raises:
            TransportError: If the request could not be sent.
        """

    @abstractmethod
    async def active_subscriptions(
        self,
    ) -> Mapping[InternalSubscriptionId, ActiveSubscription]:
        """Registry of live subscriptions keyed by internal id."""

    @abstractmethod
    async def publish(
        self,
        kind: int,
        content: str,
        tags: Sequence[Sequence[str]] | None = None,
    ) -> str:
        """Sign and submit an event.

        Returns:
            The id of the submitted event.

        Raises:
            TransportError: If the event could not be sent.
        """

    @abstractmethod
    async def send_close(self, subscription_id: SubscriptionId) -> None:
        """Send a CLOSE for a relay-side subscription id.

        The protocol defines no reply, so this does not wait for one.

        Raises:
            TransportError: If the message could not be sent.
        """

    @abstractmethod
    def notifications(self) -> NotificationStream:
        """Open a stream receiving every message from now on."""

    @abstractmethod
    async def fetch_events(
        self, filters: Sequence[Filter], timeout: float
    ) -> list[Event]:
        """Query stored events matching ``filters``.

        Collects events until the relay signals end of stored events,
        closes the query, or ``timeout`` seconds elapse.

        Raises:
            TransportError: If the query could not be sent.
        """


class ReportSinkPort(ABC):
    """Port for presenting the reports of a run."""

    @abstractmethod
    async def emit(self, reports: Sequence[TestReport]) -> None:
        """Render every report, in order, once per run."""
