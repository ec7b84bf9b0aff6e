"""Test suite for the relay conformance tester.

Organized into three categories:

1. core/: Unit tests for core protocol logic
   - No network, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Tests for adapter implementations
   - Wire codec, report rendering and command-line parsing

3. fakes/: Port implementations for testing
   - In-memory RelayPort and NotificationStream implementations
   - Used by core unit tests
"""
