"""Core protocol logic for the relay conformance tester.

This package contains zero external dependencies and represents the
capability test procedures, the message verification state machine
and the report aggregation. Relay I/O, configuration and rendering are
handled by the adapters package.
"""

from .models import (
    ActionResult,
    ConfigurationError,
    Event,
    EventKind,
    Filter,
    InternalSubscriptionId,
    Nip,
    RelayMessage,
    RelayMessageError,
    Subscription,
    SubscriptionId,
    TransportError,
)
from .report import Diagnostic, Failed, Passed, TestReport

__all__ = [
    "ActionResult",
    "ConfigurationError",
    "Diagnostic",
    "Event",
    "EventKind",
    "Failed",
    "Filter",
    "InternalSubscriptionId",
    "Nip",
    "Passed",
    "RelayMessage",
    "RelayMessageError",
    "Subscription",
    "SubscriptionId",
    "TestReport",
    "TransportError",
]
