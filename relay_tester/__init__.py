"""Conformance tester for Nostr relays.

Drives a relay through a scripted interaction per NIP and checks every
message it emits against the protocol's required shape, ordering and
content.
"""

__version__ = "0.1.0"
