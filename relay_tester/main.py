"""Composition root for the relay conformance tester.

This module is the ONLY location that imports both core protocol logic
and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Command-line parsing and configuration loading
- Logging setup
- Relay adapter instantiation and connection
- Sequential capability tests
- Report rendering
"""

import asyncio
import logging
import sys
from collections.abc import Sequence

from relay_tester.adapters.cli.arguments import parse_arguments
from relay_tester.adapters.relay.keys import load_private_key
from relay_tester.adapters.relay.websocket import WebsocketRelayAdapter
from relay_tester.adapters.report.stdout import StdoutReportRenderer
from relay_tester.config import load_settings
from relay_tester.core.models import ConfigurationError
from relay_tester.core.report import TestReport
from relay_tester.core.runner import ConformanceRunner


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Log lines go to stderr; stdout is reserved for the test reports.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )


async def bootstrap(argv: Sequence[str] | None = None) -> list[TestReport]:
    """Load configuration, wire adapters, and test the relay.

    Steps:
    1. Parse the command line and load configuration
    2. Configure logging
    3. Connect the relay adapter
    4. Run the requested capability tests
    5. Print the reports

    Returns:
        One report per requested NIP, in order.

    Raises:
        ConfigurationError: If the configuration is invalid or incomplete.
        TransportError: If the relay cannot be reached.
    """
    # Step 1: Load configuration
    arguments = parse_arguments(argv)
    settings = load_settings(arguments.config_path, arguments.overrides)

    # Step 2: Configure logging
    configure_logging(settings.log_level, settings.log_format)
    logger = logging.getLogger(__name__)

    relay_url = settings.require_relay_url()
    private_key = load_private_key(settings.key)

    # Step 3: Connect
    relay = WebsocketRelayAdapter(url=relay_url, private_key=private_key)
    renderer = StdoutReportRenderer()
    logger.info(f"Testing {relay_url} as {relay.public_key}")

    await relay.connect()
    try:
        # Step 4: Run tests, one NIP at a time
        runner = ConformanceRunner(
            relay,
            verify_timeout=settings.verify_timeout_seconds,
            fetch_timeout=settings.fetch_timeout_seconds,
        )
        reports = await runner.run(settings.nips)
    finally:
        await relay.disconnect()

    # Step 5: Report
    await renderer.emit(reports)
    return reports


def main() -> None:
    """Application entry point.

    Exit codes:
        0: Every requested NIP passed
        1: A NIP failed, or a fatal configuration/connection error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        reports = asyncio.run(bootstrap())
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(0 if all(report.passed for report in reports) else 1)


if __name__ == "__main__":
    main()
