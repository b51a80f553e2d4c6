"""Validation orchestrator.

Runs every check against a materialized project concurrently, each bounded
by the configured timeout, and aggregates the outcomes into a
:class:`ValidationReport`.  A failing or timed-out check never raises; it is
reported.  Materialized files are never rolled back.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Sequence

from rich.panel import Panel
from rich.table import Table

from ..utils import console, format_duration
from .checks import ValidationCheck, default_checks
from .results import CheckResult, CheckStatus, ValidationReport

_STATUS_STYLE = {
    CheckStatus.PASSED: "[green]PASSED[/green]",
    CheckStatus.FAILED: "[red]FAILED[/red]",
    CheckStatus.SKIPPED: "[dim]SKIPPED[/dim]",
}


class ProjectValidator:
    """Runs validation checks against a generated project.

    Parameters
    ----------
    checks:
        Checks to run.  Defaults to :func:`default_checks`.
    timeout:
        Per-check wall-clock limit in seconds.
    """

    def __init__(
        self,
        checks: Optional[Sequence[ValidationCheck]] = None,
        timeout: float = 120.0,
        *,
        quiet: bool = False,
    ) -> None:
        self.checks = list(checks) if checks is not None else default_checks()
        self.timeout = timeout
        self.quiet = quiet

    async def validate(self, output_root: str | Path) -> ValidationReport:
        root = Path(output_root).resolve()
        if not self.quiet:
            console.print(Panel(f"[bold]Validating {root.name}[/bold]", style="blue"))

        outcomes = await asyncio.gather(
            *(check.run(root, self.timeout) for check in self.checks),
            return_exceptions=True,
        )

        results: list[CheckResult] = []
        for check, outcome in zip(self.checks, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                results.append(
                    CheckResult(
                        name=check.name,
                        status=CheckStatus.FAILED,
                        timed_out=True,
                        output=f"Check exceeded {self.timeout}s",
                    )
                )
            elif isinstance(outcome, Exception):
                results.append(
                    CheckResult(name=check.name, status=CheckStatus.FAILED, output=str(outcome))
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        report = ValidationReport(root=str(root), checks=results)
        if not self.quiet:
            self._log_report(report)
        return report

    @staticmethod
    def _log_report(report: ValidationReport) -> None:
        table = Table(title="Validation", show_header=True, header_style="bold cyan")
        table.add_column("Check", no_wrap=True)
        table.add_column("Status")
        table.add_column("Time", justify="right")
        table.add_column("Notes", style="dim")
        for check in report.checks:
            note = check.reason
            if check.timed_out:
                note = "timed out"
            elif check.failed:
                note = check.output.splitlines()[0] if check.output else ""
            table.add_row(
                check.name,
                _STATUS_STYLE[check.status],
                format_duration(check.duration_seconds),
                note,
            )
        console.print(table)
