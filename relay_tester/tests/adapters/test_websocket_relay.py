"""Tests for WebsocketRelayAdapter against a scripted connection."""

import asyncio
import json

import pytest

from relay_tester.adapters.relay.keys import load_private_key
from relay_tester.adapters.relay.websocket import (
    QueueNotificationStream,
    WebsocketRelayAdapter,
)
from relay_tester.config import DEFAULT_PRIVATE_KEY
from relay_tester.core.models import (
    ClosedMessage,
    ConfigurationError,
    Filter,
    InternalSubscriptionId,
    NoticeMessage,
    SubscriptionId,
    TransportError,
)

STORED_EVENT = {
    "id": "1" * 64,
    "pubkey": "a" * 64,
    "created_at": 1_700_000_000,
    "kind": 1,
    "tags": [],
    "content": "stored",
    "sig": "f" * 128,
}


class ScriptedConnection:
    """Stand-in for a websocket client connection.

    Records sent frames and answers each REQ with the frames returned
    by ``on_req``.
    """

    def __init__(self):
        self.sent: list[list] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.on_req = lambda subscription_id: []
        self.closed = False

    async def send(self, frame: str) -> None:
        message = json.loads(frame)
        self.sent.append(message)
        if message[0] == "REQ":
            for reply in self.on_req(message[1]):
                self.incoming.put_nowait(json.dumps(reply))

    def feed(self, frame) -> None:
        self.incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def hang_up(self) -> None:
        self.incoming.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self.hang_up()

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self.incoming.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


@pytest.fixture
def connection() -> ScriptedConnection:
    return ScriptedConnection()


@pytest.fixture
async def adapter(connection):
    relay = WebsocketRelayAdapter(
        url="ws://relay.test", private_key=load_private_key(DEFAULT_PRIVATE_KEY)
    )
    relay._connection = connection
    relay._reader = asyncio.create_task(relay._read_loop())
    yield relay
    await relay.disconnect()


def test_default_key_loads():
    key = load_private_key(DEFAULT_PRIVATE_KEY)

    assert len(key.public_key.hex()) == 64


@pytest.mark.parametrize("value", ["", "nsec1invalid", "zz" * 32, "abcd"])
def test_invalid_keys_are_configuration_errors(value):
    with pytest.raises(ConfigurationError):
        load_private_key(value)


@pytest.mark.asyncio
async def test_subscribe_registers_relay_side_id(adapter, connection):
    internal_id = InternalSubscriptionId("nip01-a")

    await adapter.subscribe(internal_id, [Filter(kinds=(1,), since=10)])

    active = (await adapter.active_subscriptions())[internal_id]
    assert connection.sent == [["REQ", str(active.id), {"kinds": [1], "since": 10}]]
    assert str(active.id) != str(internal_id)


@pytest.mark.asyncio
async def test_resubscribe_reuses_relay_side_id(adapter):
    internal_id = InternalSubscriptionId("nip01-a")
    await adapter.subscribe(internal_id, [Filter(kinds=(1,))])
    first = (await adapter.active_subscriptions())[internal_id].id

    await adapter.subscribe(internal_id, [Filter(kinds=(5,))])

    assert (await adapter.active_subscriptions())[internal_id].id == first


@pytest.mark.asyncio
async def test_send_close_forgets_subscription(adapter, connection):
    internal_id = InternalSubscriptionId("nip01-a")
    await adapter.subscribe(internal_id, [Filter()])
    subscription_id = (await adapter.active_subscriptions())[internal_id].id

    await adapter.send_close(subscription_id)

    assert connection.sent[-1] == ["CLOSE", str(subscription_id)]
    assert await adapter.active_subscriptions() == {}


@pytest.mark.asyncio
async def test_publish_sends_signed_event(adapter, connection):
    event_id = await adapter.publish(5, "bye", [["e", "1" * 64]])

    (frame,) = connection.sent
    assert frame[0] == "EVENT"
    payload = frame[1]
    assert payload["id"] == event_id
    assert payload["pubkey"] == adapter.public_key
    assert payload["kind"] == 5
    assert payload["tags"] == [["e", "1" * 64]]
    assert len(payload["sig"]) == 128


@pytest.mark.asyncio
async def test_notifications_receive_decoded_frames(adapter, connection):
    stream = adapter.notifications()
    connection.feed("garbage")
    connection.feed(["NOTICE", "hello"])

    message = await asyncio.wait_for(stream.__anext__(), timeout=1)

    assert message == NoticeMessage("hello")
    await stream.aclose()


@pytest.mark.asyncio
async def test_relay_closed_subscription_is_forgotten(adapter, connection):
    internal_id = InternalSubscriptionId("nip01-a")
    await adapter.subscribe(internal_id, [Filter()])
    subscription_id = (await adapter.active_subscriptions())[internal_id].id
    stream = adapter.notifications()

    connection.feed(["CLOSED", str(subscription_id), "error: bye"])
    message = await asyncio.wait_for(stream.__anext__(), timeout=1)

    assert message == ClosedMessage(SubscriptionId(str(subscription_id)), "error: bye")
    assert await adapter.active_subscriptions() == {}


@pytest.mark.asyncio
async def test_streams_end_when_connection_drops(adapter, connection):
    stream = adapter.notifications()

    connection.hang_up()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(stream.__anext__(), timeout=1)
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_fetch_events_collects_until_eose(adapter, connection):
    connection.on_req = lambda sub: [["EVENT", sub, STORED_EVENT], ["EOSE", sub]]

    events = await adapter.fetch_events([Filter(ids=(STORED_EVENT["id"],))], timeout=1)

    assert [event.id for event in events] == [STORED_EVENT["id"]]
    req, close = connection.sent
    assert req[0] == "REQ"
    assert close == ["CLOSE", req[1]]


@pytest.mark.asyncio
async def test_fetch_events_skips_close_when_relay_closed_query(adapter, connection):
    connection.on_req = lambda sub: [["CLOSED", sub, "restricted"]]

    events = await adapter.fetch_events([Filter()], timeout=1)

    assert events == []
    assert [frame[0] for frame in connection.sent] == ["REQ"]


@pytest.mark.asyncio
async def test_fetch_events_returns_partial_results_on_timeout(adapter, connection):
    connection.on_req = lambda sub: [["EVENT", sub, STORED_EVENT]]

    events = await adapter.fetch_events([Filter()], timeout=0.05)

    assert len(events) == 1
    assert connection.sent[-1][0] == "CLOSE"


@pytest.mark.asyncio
async def test_send_without_connection_raises_transport_error():
    relay = WebsocketRelayAdapter(
        url="ws://relay.test", private_key=load_private_key(DEFAULT_PRIVATE_KEY)
    )

    with pytest.raises(TransportError):
        await relay.send_close(SubscriptionId("s"))


@pytest.mark.asyncio
async def test_closed_queue_stream_detaches():
    detached = []
    stream = QueueNotificationStream(on_close=detached.append)

    await stream.aclose()
    await stream.aclose()

    assert detached == [stream]
