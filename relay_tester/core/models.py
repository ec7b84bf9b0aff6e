"""Domain models for the relay conformance tester.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypeAlias


class ConfigurationError(ValueError):
    """Raised when the run cannot start because of invalid configuration."""


class TransportError(Exception):
    """Raised by relay adapters when a subscribe/publish/close call fails."""


class RelayMessageError(ValueError):
    """Raised when a relay frame or event payload cannot be decoded."""


def unix_now() -> int:
    """Current unix time in whole seconds, the protocol's timestamp unit."""
    return int(time.time())


class EventKind:
    """Event kinds exercised by the capability tests."""

    TEXT_NOTE = 1
    CONTACT_LIST = 3
    DELETION = 5


class Nip(Enum):
    """Supported NIPs.

    The set is closed: adding a capability means adding a member here and
    a procedure in ``core.procedures``.
    """

    NIP01 = "nip01"
    NIP02 = "nip02"
    NIP09 = "nip09"

    @classmethod
    def parse(cls, token: "str | Nip") -> "Nip":
        """Map a case-insensitive token to a NIP.

        Raises:
            ConfigurationError: If the token is not a supported NIP.
        """
        if isinstance(token, Nip):
            return token
        normalized = str(token).strip().lower()
        for nip in cls:
            if nip.value == normalized:
                return nip
        raise ConfigurationError(f"Not a supported NIP: {token}")

    @property
    def title(self) -> str:
        return _NIP_TITLES[self]

    @property
    def event_kind(self) -> int:
        """Kind of the events this NIP's test subscribes to."""
        return _NIP_KINDS[self]


_NIP_TITLES = {
    Nip.NIP01: "basic event flow",
    Nip.NIP02: "contact list",
    Nip.NIP09: "event deletion",
}

_NIP_KINDS = {
    Nip.NIP01: EventKind.TEXT_NOTE,
    Nip.NIP02: EventKind.CONTACT_LIST,
    Nip.NIP09: EventKind.DELETION,
}


@dataclass(frozen=True)
class InternalSubscriptionId:
    """Caller-chosen subscription token, used before the relay assigns an id."""

    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("internal subscription id must be non-empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SubscriptionId:
    """Relay-side subscription id carried by every subscription message."""

    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("subscription id must be non-empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Filter:
    """A NIP-01 subscription filter."""

    ids: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    since: int | None = None
    limit: int | None = None

    def with_since(self, timestamp: int) -> "Filter":
        """Copy of this filter with a lower creation-time bound."""
        return replace(self, since=timestamp)

    def matches(self, event: "Event") -> bool:
        """Whether an event satisfies every constraint of this filter."""
        if self.ids and event.id not in self.ids:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Render the filter as its wire JSON object."""
        payload: dict[str, Any] = {}
        if self.ids:
            payload["ids"] = list(self.ids)
        if self.authors:
            payload["authors"] = list(self.authors)
        if self.kinds:
            payload["kinds"] = list(self.kinds)
        if self.since is not None:
            payload["since"] = self.since
        if self.limit is not None:
            payload["limit"] = self.limit
        return payload


@dataclass(frozen=True)
class Event:
    """A signed event as delivered by a relay."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    @classmethod
    def from_dict(cls, payload: Any) -> "Event":
        """Build an event from its wire JSON object.

        Raises:
            RelayMessageError: If a required field is missing or mistyped.
        """
        if not isinstance(payload, dict):
            raise RelayMessageError(f"event payload must be an object, got {payload!r}")
        try:
            tags = tuple(tuple(str(item) for item in tag) for tag in payload.get("tags", []))
            event = cls(
                id=str(payload["id"]),
                pubkey=str(payload["pubkey"]),
                created_at=int(payload["created_at"]),
                kind=int(payload["kind"]),
                tags=tags,
                content=str(payload.get("content", "")),
                sig=str(payload.get("sig", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RelayMessageError(f"malformed event payload: {e}") from e
        return event


@dataclass
class Subscription:
    """A named subscription owned by one capability test.

    ``external_id`` stays None until the relay registry has been consulted.
    ``created_at`` is the since-timestamp injected into the filter.
    """

    name: str
    internal_id: InternalSubscriptionId
    created_at: int
    external_id: SubscriptionId | None = None


@dataclass(frozen=True)
class ActiveSubscription:
    """Relay registry entry for a live subscription."""

    id: SubscriptionId
    filters: tuple[Filter, ...] = field(default_factory=tuple)


# ============================================================================
# Relay -> client protocol messages
# ============================================================================


@dataclass(frozen=True)
class EventMessage:
    """``["EVENT", <subscription_id>, <event>]``"""

    subscription_id: SubscriptionId
    event: Event


@dataclass(frozen=True)
class ClosedMessage:
    """``["CLOSED", <subscription_id>, <message>]``"""

    subscription_id: SubscriptionId
    message: str


@dataclass(frozen=True)
class NoticeMessage:
    """``["NOTICE", <message>]``"""

    message: str


@dataclass(frozen=True)
class OkMessage:
    """``["OK", <event_id>, <accepted>, <message>]``"""

    event_id: str
    accepted: bool
    message: str


@dataclass(frozen=True)
class EndOfStoredEventsMessage:
    """``["EOSE", <subscription_id>]``"""

    subscription_id: SubscriptionId


@dataclass(frozen=True)
class CountMessage:
    """``["COUNT", <subscription_id>, {"count": <n>}]``"""

    subscription_id: SubscriptionId
    count: int


@dataclass(frozen=True)
class UnknownMessage:
    """Any frame this tester does not know; kept for forward compatibility."""

    raw: tuple[Any, ...]


RelayMessage: TypeAlias = (
    EventMessage
    | ClosedMessage
    | NoticeMessage
    | OkMessage
    | EndOfStoredEventsMessage
    | CountMessage
    | UnknownMessage
)


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a capability's relay action.

    ``target_event_id`` is the event whose echo completes the test.
    ``published_ids`` lists every event the action published, so that their
    acknowledgements are not mistaken for foreign ones.
    """

    target_event_id: str
    published_ids: tuple[str, ...] = ()
