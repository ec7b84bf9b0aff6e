"""Sequential execution of the requested capability tests."""

import logging
from collections.abc import Iterable

from .logger import ProcedureAborted, ReportLogger
from .models import Nip
from .ports import RelayPort
from .procedures import procedure_for
from .report import TestReport

logger = logging.getLogger(__name__)


def unique_in_order(nips: Iterable[Nip]) -> list[Nip]:
    """Drop repeated NIPs, keeping the first occurrence's position."""
    seen: set[Nip] = set()
    ordered = []
    for nip in nips:
        if nip not in seen:
            seen.add(nip)
            ordered.append(nip)
    return ordered


class ConformanceRunner:
    """Runs capability tests one after another against one relay.

    Tests share the relay's notification stream, so they are never
    interleaved: each procedure completes before the next one starts.
    """

    def __init__(
        self,
        relay: RelayPort,
        verify_timeout: float | None = None,
        fetch_timeout: float = 5.0,
    ):
        self.relay = relay
        self.verify_timeout = verify_timeout
        self.fetch_timeout = fetch_timeout

    async def run(self, nips: Iterable[Nip]) -> list[TestReport]:
        """Test every NIP in order. Returns one report per NIP."""
        reports: list[TestReport] = []
        for nip in unique_in_order(nips):
            reports.append(await self.run_one(nip))
        return reports

    async def run_one(self, nip: Nip) -> TestReport:
        """Test one NIP.

        Procedures record aborts of their own steps; errors escaping the
        procedure (e.g. during teardown) still yield a Failed report.
        """
        procedure = procedure_for(
            nip,
            self.relay,
            verify_timeout=self.verify_timeout,
            fetch_timeout=self.fetch_timeout,
        )
        try:
            report = await procedure.run()
        except Exception as e:
            logger.error(f"{nip.value}: test procedure failed: {e}", exc_info=True)
            report_logger = ReportLogger(nip)
            report_logger.log(ProcedureAborted(e))
            report = report_logger.into_report()
            # Continue with next NIP

        logger.info(f"{nip.value}: {'passed' if report.passed else 'failed'}")
        return report
