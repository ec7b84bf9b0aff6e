"""External adapters for the relay conformance tester.

This package contains all external dependencies (websockets, pynostr,
argparse, terminal output) and provides implementations of the core
port interfaces.

Adapter Organization:

- relay/: Websocket client, frame codec and signing keys
- report/: Rendering of test reports (stdout)
- cli/: Command-line arguments
"""
