"""Fake implementations of core ports for testing.

These in-memory implementations allow core protocol logic to be tested
without a relay:

- FakeRelayPort: Scripted relay with a controllable notification stream
- FakeNotificationStream: In-memory stream of relay messages
"""

from .relay import FakeNotificationStream, FakeRelayPort

__all__ = [
    "FakeNotificationStream",
    "FakeRelayPort",
]
