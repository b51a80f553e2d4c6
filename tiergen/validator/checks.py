"""Validation checks run against a materialized project tree.

External checks run the project's own toolchain (Go, the TypeScript
compiler, the TypeSpec compiler) as child processes bounded by a timeout.
Syntax checks for YAML and JSON payloads run in-process.  No check writes
to the tree it inspects.
"""

from __future__ import annotations

import asyncio
import json
import shutil
import time
from pathlib import Path
from typing import Callable, Iterator, Optional

import yaml

from ..utils import TIMEOUT_MESSAGE, TIMEOUT_RETURN_CODE, run_command
from .results import CheckResult, CheckStatus

# Directories never scanned by the in-process syntax checks.
IGNORED_DIRS = frozenset({".git", "node_modules", "dist", "bin", "vendor"})

# Output is truncated to keep reports readable.
MAX_OUTPUT_CHARS = 8000


class ValidationCheck:
    """Base class: one named pass/fail check over a project root."""

    name: str = "check"

    def applies_to(self, root: Path) -> Optional[str]:
        """Return ``None`` when the check applies, otherwise the reason to skip."""
        return None

    async def run(self, root: Path, timeout: float) -> CheckResult:
        raise NotImplementedError

    def skipped(self, reason: str) -> CheckResult:
        return CheckResult(name=self.name, status=CheckStatus.SKIPPED, reason=reason)


# ---------------------------------------------------------------------------
# External tool checks
# ---------------------------------------------------------------------------

class CommandCheck(ValidationCheck):
    """Runs a command in the project (or a subdirectory) and checks its exit code.

    Parameters
    ----------
    name:
        Check name reported in the ``ValidationReport``.
    command:
        Program and arguments.  The program must be on ``PATH`` or the
        check is skipped.
    cwd:
        Working directory relative to the project root.
    requires:
        Predicate over the project root; when it returns a string the check
        is skipped with that reason.
    """

    def __init__(
        self,
        name: str,
        command: list[str],
        *,
        cwd: str = ".",
        requires: Optional[Callable[[Path], Optional[str]]] = None,
    ) -> None:
        self.name = name
        self.command = list(command)
        self.cwd = cwd
        self._requires = requires

    def applies_to(self, root: Path) -> Optional[str]:
        if self._requires is not None:
            reason = self._requires(root)
            if reason:
                return reason
        if shutil.which(self.command[0]) is None:
            return f"'{self.command[0]}' not found on PATH"
        return None

    async def run(self, root: Path, timeout: float) -> CheckResult:
        reason = self.applies_to(root)
        if reason:
            return self.skipped(reason)

        start = time.monotonic()
        try:
            returncode, stdout, stderr = await run_command(
                self.command, cwd=root / self.cwd, timeout=timeout
            )
        except FileNotFoundError:
            return self.skipped(f"'{self.command[0]}' not found on PATH")
        elapsed = time.monotonic() - start

        timed_out = returncode == TIMEOUT_RETURN_CODE and stderr.startswith(TIMEOUT_MESSAGE)
        output = "\n".join(part for part in (stdout, stderr) if part)
        return CheckResult(
            name=self.name,
            status=CheckStatus.PASSED if returncode == 0 else CheckStatus.FAILED,
            command=self.command,
            duration_seconds=elapsed,
            output=output[-MAX_OUTPUT_CHARS:],
            timed_out=timed_out,
        )


# ---------------------------------------------------------------------------
# In-process syntax checks
# ---------------------------------------------------------------------------

class _SyntaxCheck(ValidationCheck):
    suffixes: tuple[str, ...] = ()

    def parse(self, text: str) -> None:
        raise NotImplementedError

    def applies_to(self, root: Path) -> Optional[str]:
        if next(_iter_files(root, self.suffixes), None) is None:
            return f"no {'/'.join(self.suffixes)} files"
        return None

    async def run(self, root: Path, timeout: float) -> CheckResult:
        reason = self.applies_to(root)
        if reason:
            return self.skipped(reason)
        start = time.monotonic()
        errors = await asyncio.wait_for(asyncio.to_thread(self._scan, root), timeout=timeout)
        return CheckResult(
            name=self.name,
            status=CheckStatus.FAILED if errors else CheckStatus.PASSED,
            duration_seconds=time.monotonic() - start,
            output="\n".join(errors)[-MAX_OUTPUT_CHARS:],
        )

    def _scan(self, root: Path) -> list[str]:
        errors: list[str] = []
        for path in _iter_files(root, self.suffixes):
            rel = path.relative_to(root).as_posix()
            try:
                self.parse(path.read_text(encoding="utf-8"))
            except (ValueError, yaml.YAMLError) as exc:
                errors.append(f"{rel}: {exc}")
        return errors


class YamlSyntaxCheck(_SyntaxCheck):
    name = "yaml-syntax"
    suffixes = (".yaml", ".yml")

    def parse(self, text: str) -> None:
        for _ in yaml.safe_load_all(text):
            pass


class JsonSyntaxCheck(_SyntaxCheck):
    name = "json-syntax"
    suffixes = (".json",)

    def parse(self, text: str) -> None:
        json.loads(text)


def _iter_files(root: Path, suffixes: tuple[str, ...]) -> Iterator[Path]:
    for path in sorted(root.rglob("*")):
        if any(part in IGNORED_DIRS for part in path.relative_to(root).parts[:-1]):
            continue
        if path.is_file() and path.suffix in suffixes:
            yield path


# ---------------------------------------------------------------------------
# Default check set
# ---------------------------------------------------------------------------

def _needs_file(rel: str) -> Callable[[Path], Optional[str]]:
    def predicate(root: Path) -> Optional[str]:
        return None if (root / rel).exists() else f"{rel} not present"
    return predicate


def _needs_typescript(root: Path) -> Optional[str]:
    client = root / "client" / "typescript"
    if not (client / "tsconfig.json").is_file():
        return "client/typescript/tsconfig.json not present"
    if not (client / "node_modules" / ".bin" / "tsc").exists():
        return "TypeScript client dependencies not installed (run npm install)"
    return None


def _needs_typespec(root: Path) -> Optional[str]:
    if next(_iter_files(root, (".tsp",)), None) is None:
        return "no .tsp files"
    return None


def default_checks() -> list[ValidationCheck]:
    """The checks run by ``ProjectValidator`` when none are supplied."""
    return [
        CommandCheck("go-build", ["go", "build", "./..."], requires=_needs_file("go.mod")),
        CommandCheck("go-vet", ["go", "vet", "./..."], requires=_needs_file("go.mod")),
        CommandCheck(
            "typescript",
            ["npx", "--no-install", "tsc", "--noEmit", "-p", "."],
            cwd="client/typescript",
            requires=_needs_typescript,
        ),
        CommandCheck("typespec", ["tsp", "compile", ".", "--no-emit"], requires=_needs_typespec),
        YamlSyntaxCheck(),
        JsonSyntaxCheck(),
    ]
