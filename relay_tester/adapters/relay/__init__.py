"""Relay transport adapters.

Implementations of RelayPort:
- WebsocketRelayAdapter: NIP-01 over a websocket connection
"""
