"""Command-line arguments.

Every option mirrors a configuration field; only options given on the
command line are returned as overrides, so they take precedence over
the environment and the config file without masking them otherwise.
"""

import argparse
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from relay_tester.config import DEFAULT_CONFIG_PATH


@dataclass(frozen=True)
class CliArguments:
    """Parsed command line."""

    config_path: str | None
    overrides: dict[str, Any] = field(default_factory=dict)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nostr-relay-tester",
        description="Check a relay's conformance to individual NIPs.",
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config_path",
        help=f"Config file [default: {DEFAULT_CONFIG_PATH}]",
    )
    parser.add_argument(
        "-r",
        "--relay-url",
        help="Must be specified in the config file or as a CLI arg [example: wss://relay.primal.net]",
    )
    parser.add_argument(
        "-k",
        "--key",
        help="bech32-encoded (nsec) or hex private key",
    )
    parser.add_argument(
        "-n",
        "--nips",
        help="Comma separated NIPs to test [default: nip01,nip09]",
    )
    parser.add_argument(
        "--verify-timeout",
        dest="verify_timeout_seconds",
        type=float,
        help="Seconds to wait for a relay to echo a published event",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Log level",
    )
    return parser


def parse_arguments(argv: Sequence[str] | None = None) -> CliArguments:
    """Parse ``argv`` (defaults to sys.argv) into a config path and overrides."""
    namespace = build_parser().parse_args(argv)
    values = vars(namespace)
    config_path = values.pop("config_path")
    overrides = {name: value for name, value in values.items() if value is not None}
    return CliArguments(config_path=config_path, overrides=overrides)
