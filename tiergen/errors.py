"""Error taxonomy for the tiergen engine.

Every error carries the offending path or flag (where there is one), a
remediation hint for the user, and the process exit code the CLI maps it to.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_CONFIG_INVALID = 2
EXIT_CONFLICTS = 3
EXIT_ALREADY_EXISTS = 4
EXIT_FATAL = 5
EXIT_VALIDATION_FAILED = 6


class TiergenError(Exception):
    """Base class for every error raised by the engine."""

    exit_code: int = EXIT_FATAL

    def __init__(self, message: str, *, hint: str = "") -> None:
        self.hint = hint
        super().__init__(message)

    def describe(self) -> str:
        """Return the message followed by the remediation hint, if any."""
        if self.hint:
            return f"{self}\n  hint: {self.hint}"
        return str(self)


class ConfigValidationError(TiergenError):
    """Raised when a project configuration violates one or more constraints.

    ``violations`` lists every problem found, not just the first one.
    """

    exit_code = EXIT_CONFIG_INVALID

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(
            f"Invalid project configuration ({len(self.violations)} problem(s)):\n{lines}",
            hint="Correct the listed values and run the command again.",
        )


class TemplateNotFoundError(TiergenError):
    """Raised when the template set is missing an artifact or source file."""

    def __init__(self, template_id: str, message: str = "") -> None:
        self.template_id = template_id
        super().__init__(
            message or f"Template not found: {template_id}",
            hint="The installed template set is incomplete; reinstall tiergen "
            "or check TIERGEN_TEMPLATES_DIR.",
        )


class RenderError(TiergenError):
    """Raised when a template cannot be rendered completely."""

    def __init__(self, template_id: str, message: str) -> None:
        self.template_id = template_id
        super().__init__(
            f"Failed to render {template_id}: {message}",
            hint="Every variable used by a template must come from the resolved "
            "configuration or the engine-provided values.",
        )


class AlreadyExistsError(TiergenError):
    """Raised when ``create`` targets a directory that already holds a manifest."""

    exit_code = EXIT_ALREADY_EXISTS

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(
            f"A generated project already exists at {self.path}",
            hint="Use 'tiergen migrate' or 'tiergen update' to change an existing "
            "project, or choose another output directory.",
        )


class FileWriteError(TiergenError):
    """Raised when writing a file (or the manifest) fails mid-run."""

    def __init__(self, path: Path, cause: BaseException | str) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(
            f"Failed to write {self.path}: {cause}",
            hint="Check permissions and free disk space; the previous manifest "
            "was left untouched so the command can be re-run safely.",
        )


class ManifestError(TiergenError):
    """Raised when a project manifest is missing or cannot be parsed."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = Path(path)
        super().__init__(
            f"{message}: {self.path}",
            hint="Point --target at a directory produced by 'tiergen generate'.",
        )


class ValidationFailure(TiergenError):
    """Raised when validation fails and the caller asked to fail on it."""

    exit_code = EXIT_VALIDATION_FAILED

    def __init__(self, failed_checks: list[str], report: Any = None) -> None:
        self.failed_checks = list(failed_checks)
        self.report = report
        super().__init__(
            f"Project validation failed: {', '.join(self.failed_checks)}",
            hint="Inspect the diagnostics above; generated files were kept.",
        )


class MigrationConflict(TiergenError):
    """Raised by callers that treat unresolved migration conflicts as an error.

    ``conflicts`` holds one ``(path, live_fingerprint, proposed_fingerprint)``
    tuple per conflicting file.
    """

    exit_code = EXIT_CONFLICTS

    def __init__(self, conflicts: list[tuple[str, str, str]]) -> None:
        self.conflicts = list(conflicts)
        paths = ", ".join(c[0] for c in self.conflicts)
        super().__init__(
            f"{len(self.conflicts)} file(s) need manual resolution: {paths}",
            hint="Merge the '.tiergen-proposed' file into your version, then run "
            "'tiergen update' to record the result.",
        )
