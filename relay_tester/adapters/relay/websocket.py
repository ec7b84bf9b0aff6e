"""Websocket relay adapter.

Implements RelayPort over a single websocket connection. A background
reader task decodes every relay frame and fans it out to all open
notification streams; events are built and signed with pynostr.
"""

import asyncio
import logging
import secrets
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any

import websockets
from pynostr.event import Event as NostrEvent
from pynostr.key import PrivateKey
from websockets.exceptions import ConnectionClosed, WebSocketException

from relay_tester.core.models import (
    ActiveSubscription,
    ClosedMessage,
    EndOfStoredEventsMessage,
    Event,
    EventMessage,
    Filter,
    InternalSubscriptionId,
    RelayMessage,
    RelayMessageError,
    SubscriptionId,
    TransportError,
)
from relay_tester.core.ports import NotificationStream, RelayPort

from .messages import encode_client_message, parse_relay_message

logger = logging.getLogger(__name__)

_END = object()


class QueueNotificationStream(NotificationStream):
    """Notification stream backed by an asyncio queue."""

    def __init__(self, on_close: Callable[["QueueNotificationStream"], None]):
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    def put(self, message: RelayMessage) -> None:
        self._queue.put_nowait(message)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    async def __anext__(self) -> RelayMessage:
        item = await self._queue.get()
        if item is _END:
            # Stay exhausted for later calls
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_close(self)


class WebsocketRelayAdapter(RelayPort):
    """Talks to one relay over a websocket."""

    def __init__(
        self,
        url: str,
        private_key: PrivateKey,
        open_timeout: float = 10.0,
    ):
        """Initialize the relay adapter.

        Args:
            url: ws:// or wss:// address of the relay.
            private_key: Key that signs every published event.
            open_timeout: Seconds to wait for the websocket handshake.
        """
        self._url = url
        self._private_key = private_key
        self._public_key = private_key.public_key.hex()
        self.open_timeout = open_timeout
        self._connection: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._streams: list[QueueNotificationStream] = []
        self._subscriptions: dict[InternalSubscriptionId, ActiveSubscription] = {}
        self._ended = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def public_key(self) -> str:
        return self._public_key

    async def connect(self) -> None:
        if self._connection is not None:
            return
        try:
            self._connection = await websockets.connect(
                self._url, open_timeout=self.open_timeout
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise TransportError(f"failed to connect to {self._url}: {e}") from e

        self._ended = False
        self._reader = asyncio.create_task(self._read_loop())
        logger.info(f"Connected to relay {self._url}")

    async def disconnect(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        if self._connection is not None:
            try:
                await self._connection.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Error while closing relay connection: {e}")
            self._connection = None
            logger.info(f"Disconnected from relay {self._url}")

        self._end_streams()

    async def subscribe(
        self,
        internal_id: InternalSubscriptionId,
        filters: Sequence[Filter],
        options: Mapping[str, Any] | None = None,
    ) -> None:
        existing = self._subscriptions.get(internal_id)
        # Re-sending REQ with the same id replaces the relay-side filters
        subscription_id = existing.id if existing else SubscriptionId(secrets.token_hex(8))

        await self._send(
            encode_client_message(
                "REQ", str(subscription_id), *(f.to_dict() for f in filters)
            )
        )
        self._subscriptions[internal_id] = ActiveSubscription(
            id=subscription_id, filters=tuple(filters)
        )
        logger.debug(f"Sent REQ {subscription_id} for {internal_id}")

    async def active_subscriptions(
        self,
    ) -> Mapping[InternalSubscriptionId, ActiveSubscription]:
        return MappingProxyType(dict(self._subscriptions))

    async def publish(
        self,
        kind: int,
        content: str,
        tags: Sequence[Sequence[str]] | None = None,
    ) -> str:
        event = NostrEvent(
            content=content,
            pubkey=self._public_key,
            kind=kind,
            tags=[list(tag) for tag in tags or []],
        )
        event.sign(self._private_key.hex())

        await self._send(encode_client_message("EVENT", event.to_dict()))
        logger.debug(f"Sent EVENT {event.id} of kind {kind}")
        return event.id

    async def send_close(self, subscription_id: SubscriptionId) -> None:
        await self._send(encode_client_message("CLOSE", str(subscription_id)))
        self._forget(subscription_id)

    def notifications(self) -> NotificationStream:
        stream = QueueNotificationStream(on_close=self._detach)
        if self._ended:
            stream.end()
        else:
            self._streams.append(stream)
        return stream

    async def fetch_events(
        self, filters: Sequence[Filter], timeout: float
    ) -> list[Event]:
        subscription_id = SubscriptionId(secrets.token_hex(8))
        stream = self.notifications()
        events: list[Event] = []
        try:
            await self._send(
                encode_client_message(
                    "REQ", str(subscription_id), *(f.to_dict() for f in filters)
                )
            )
            try:
                closed_by_relay = await asyncio.wait_for(
                    self._collect(stream, subscription_id, events), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"No end of stored events for query {subscription_id} after {timeout}s, "
                    f"using {len(events)} event(s) received so far"
                )
                closed_by_relay = False

            if not closed_by_relay:
                await self._send(encode_client_message("CLOSE", str(subscription_id)))
        finally:
            await stream.aclose()
        return events

    @staticmethod
    async def _collect(
        stream: NotificationStream,
        subscription_id: SubscriptionId,
        events: list[Event],
    ) -> bool:
        """Gather a query's events. Returns True if the relay closed it."""
        async for message in stream:
            if isinstance(message, EventMessage) and message.subscription_id == subscription_id:
                events.append(message.event)
            elif (
                isinstance(message, EndOfStoredEventsMessage)
                and message.subscription_id == subscription_id
            ):
                return False
            elif isinstance(message, ClosedMessage) and message.subscription_id == subscription_id:
                return True
        return True

    async def _send(self, frame: str) -> None:
        if self._connection is None:
            raise TransportError(f"not connected to {self._url}")
        try:
            await self._connection.send(frame)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"failed to send to {self._url}: {e}") from e

    async def _read_loop(self) -> None:
        try:
            async for raw in self._connection:
                try:
                    message = parse_relay_message(raw)
                except RelayMessageError as e:
                    logger.warning(f"Skipping undecodable relay frame: {e}")
                    continue

                if isinstance(message, ClosedMessage):
                    self._forget(message.subscription_id)

                for stream in list(self._streams):
                    stream.put(message)
        except ConnectionClosed as e:
            logger.warning(f"Relay connection closed: {e}")
        finally:
            self._end_streams()

    def _end_streams(self) -> None:
        self._ended = True
        for stream in self._streams:
            stream.end()
        self._streams.clear()

    def _detach(self, stream: QueueNotificationStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    def _forget(self, subscription_id: SubscriptionId) -> None:
        for internal_id, active in list(self._subscriptions.items()):
            if active.id == subscription_id:
                del self._subscriptions[internal_id]
