"""Stdout report adapter.

Implements ReportSinkPort by printing the reports of a run to the
terminal with human-readable formatting.
"""

import asyncio
from collections.abc import Sequence

from relay_tester.core.ports import ReportSinkPort
from relay_tester.core.report import Failed, TestReport


class StdoutReportRenderer(ReportSinkPort):
    """Prints every report once, after all capabilities completed."""

    async def emit(self, reports: Sequence[TestReport]) -> None:
        await asyncio.to_thread(print, self.format_run(reports))

    @staticmethod
    def format_report(report: TestReport) -> str:
        """Format one capability's verdict and its diagnostics."""
        header = f"{report.nip.value} ({report.nip.title}): "
        if not isinstance(report, Failed):
            return header + "passed"

        lines = [header + "failed"]
        for i, diagnostic in enumerate(report.errors, 1):
            lines.append(f"  {i}. {diagnostic}")
        return "\n".join(lines)

    @classmethod
    def format_run(cls, reports: Sequence[TestReport]) -> str:
        """Format all reports followed by a summary line."""
        passed = sum(1 for report in reports if report.passed)
        failed = len(reports) - passed
        lines = [
            "=" * 80,
            "RELAY TEST REPORT",
            "=" * 80,
        ]
        lines.extend(cls.format_report(report) for report in reports)
        lines.extend(
            [
                "-" * 80,
                f"{passed} passed, {failed} failed",
            ]
        )
        return "\n".join(lines)
