"""Unit tests for core protocol logic.

These tests exercise the capability procedures without a relay.
All external ports are replaced with in-memory fakes from tests/fakes/.
"""
