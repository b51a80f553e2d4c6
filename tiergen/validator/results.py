"""Validation results collection and aggregation.

Pydantic v2 models for the outcome of each validation check and for the
report aggregated over a whole project tree.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class CheckStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Individual check
# ---------------------------------------------------------------------------

class CheckResult(BaseModel):
    """Outcome of a single validation check with its captured diagnostics."""

    name: str = Field(..., description="Check name such as 'go-build' or 'yaml-syntax'")
    status: CheckStatus
    command: list[str] = Field(default_factory=list, description="Child process argv, if any")
    duration_seconds: float = Field(default=0.0, ge=0.0)
    output: str = Field(default="", description="Captured stdout/stderr or in-process diagnostics")
    timed_out: bool = False
    reason: str = Field(default="", description="Why the check was skipped")

    @computed_field  # type: ignore[misc]
    @property
    def failed(self) -> bool:
        return self.status is CheckStatus.FAILED


# ---------------------------------------------------------------------------
# Aggregate report
# ---------------------------------------------------------------------------

class ValidationReport(BaseModel):
    """Every check run against one output root."""

    root: str
    checks: list[CheckResult] = Field(default_factory=list)
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO-8601 timestamp of when the report was produced",
    )

    @computed_field  # type: ignore[misc]
    @property
    def passed(self) -> bool:
        """True when no check failed; skipped checks do not count against it."""
        return not any(c.failed for c in self.checks)

    @computed_field  # type: ignore[misc]
    @property
    def failed_checks(self) -> list[str]:
        return [c.name for c in self.checks if c.failed]

    def get(self, name: str) -> CheckResult | None:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent)

    def summary_dict(self) -> dict[str, Any]:
        """Condensed summary suitable for the console summary table."""
        return {
            "passed": self.passed,
            "checks": len(self.checks),
            "failed": len(self.failed_checks),
            "skipped": sum(1 for c in self.checks if c.status is CheckStatus.SKIPPED),
        }
