"""Wire codec for NIP-01 relay and client frames.

Relay frames are JSON arrays whose first element names the message type.
Types this tester does not know decode to UnknownMessage.
"""

import json
from typing import Any

from relay_tester.core.models import (
    ClosedMessage,
    CountMessage,
    EndOfStoredEventsMessage,
    Event,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    RelayMessageError,
    SubscriptionId,
    UnknownMessage,
)


def encode_client_message(*parts: Any) -> str:
    """Encode a client frame such as ``REQ``, ``EVENT`` or ``CLOSE``."""
    return json.dumps(list(parts), separators=(",", ":"), ensure_ascii=False)


def _field(frame: list[Any], index: int, expected: type, label: str) -> Any:
    if len(frame) <= index:
        raise RelayMessageError(f"{frame[0]} frame is missing its {label}")
    value = frame[index]
    if not isinstance(value, expected):
        raise RelayMessageError(
            f"{frame[0]} frame has invalid {label}: {value!r}"
        )
    return value


def _subscription_id(frame: list[Any]) -> SubscriptionId:
    value = _field(frame, 1, str, "subscription id")
    if not value:
        raise RelayMessageError(f"{frame[0]} frame has an empty subscription id")
    return SubscriptionId(value)


def parse_relay_message(raw: str | bytes) -> RelayMessage:
    """Decode one relay frame.

    Raises:
        RelayMessageError: If the frame is not valid JSON or a known
            message type carries malformed fields.
    """
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RelayMessageError(f"invalid JSON frame: {e}") from e

    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise RelayMessageError(f"relay frame must be a non-empty array: {raw!r}")

    message_type = frame[0]

    if message_type == "EVENT":
        subscription_id = _subscription_id(frame)
        event = Event.from_dict(_field(frame, 2, dict, "event"))
        return EventMessage(subscription_id=subscription_id, event=event)

    if message_type == "OK":
        event_id = _field(frame, 1, str, "event id")
        accepted = _field(frame, 2, bool, "status")
        message = frame[3] if len(frame) > 3 and isinstance(frame[3], str) else ""
        return OkMessage(event_id=event_id, accepted=accepted, message=message)

    if message_type == "EOSE":
        return EndOfStoredEventsMessage(subscription_id=_subscription_id(frame))

    if message_type == "CLOSED":
        subscription_id = _subscription_id(frame)
        message = frame[2] if len(frame) > 2 and isinstance(frame[2], str) else ""
        return ClosedMessage(subscription_id=subscription_id, message=message)

    if message_type == "NOTICE":
        return NoticeMessage(message=str(_field(frame, 1, str, "message")))

    if message_type == "COUNT":
        subscription_id = _subscription_id(frame)
        payload = _field(frame, 2, dict, "count payload")
        count = payload.get("count")
        if not isinstance(count, int) or isinstance(count, bool):
            raise RelayMessageError(f"COUNT frame has invalid count: {count!r}")
        return CountMessage(subscription_id=subscription_id, count=count)

    return UnknownMessage(raw=tuple(frame))
