"""Main scaffolding orchestrator.

``ScaffoldEngine`` drives the two flows of tiergen:

- **generate** -- resolve the configuration, pick and render the artifacts,
  write them into a fresh directory, then validate the tree.
- **migrate** -- load the recorded manifest, resolve the configuration for
  the target tier, render, classify every file against the manifest and the
  live tree, write what is safe to write, then validate.

``update`` is a migration to the recorded tier, refreshing a project to the
installed template set.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from pydantic import BaseModel, Field
from rich.table import Table

from .config import Settings
from .errors import (
    AlreadyExistsError,
    ConfigValidationError,
    RenderError,
    TemplateNotFoundError,
    ValidationFailure,
)
from .migrator import DecisionKind, MigrationEngine, MigrationPlan, MigrationResult, RunState
from .resolver import (
    ConfigResolver,
    Feature,
    ProjectConfiguration,
    ResolvedConfiguration,
    Tier,
    migration_path,
)
from .resolver.models import normalize_flag
from .scaffolder import (
    COMPONENTS,
    FileMaterializer,
    GenerationManifest,
    MaterializationResult,
    MaterializeMode,
    RenderedFile,
    RenderEngine,
    TemplateRepository,
)
from .scaffolder.templates import utc_timestamp
from .utils import console, print_step_header, print_success, print_warning
from .validator import ProjectValidator, ValidationReport

_SAMPLE_NAME = "sample-service"
_SAMPLE_TIMESTAMP = "1970-01-01T00:00:00+00:00"
_ALL_FEATURES = {feature.value: True for feature in Feature}

_DECISION_STYLE = {
    DecisionKind.NEW: "green",
    DecisionKind.UNCHANGED: "dim",
    DecisionKind.ENGINE_UPDATE: "cyan",
    DecisionKind.USER_MODIFIED: "yellow",
    DecisionKind.CONFLICT: "bold red",
    DecisionKind.REMOVED: "magenta",
    DecisionKind.ORPHANED: "yellow",
}


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass
class GenerationOutcome:
    state: RunState
    resolved: ResolvedConfiguration
    materialization: MaterializationResult
    validation: Optional[ValidationReport] = None

    @property
    def manifest(self) -> GenerationManifest:
        return self.materialization.manifest

    @property
    def output_root(self) -> Path:
        return self.materialization.output_root

    @property
    def written(self) -> list[str]:
        return self.materialization.written

    @property
    def diffs(self) -> dict[str, str]:
        return self.materialization.diffs


@dataclass
class MigrationOutcome:
    state: RunState
    resolved: ResolvedConfiguration
    source_tier: Optional[Tier]
    target_tier: Tier
    tier_path: list[Tier]
    result: MigrationResult
    validation: Optional[ValidationReport] = None

    @property
    def plan(self) -> MigrationPlan:
        return self.result.plan

    @property
    def manifest(self) -> GenerationManifest:
        return self.result.manifest

    @property
    def downgrade(self) -> bool:
        return self.source_tier is not None and self.target_tier < self.source_tier

    @property
    def backup_dir(self) -> Optional[Path]:
        return self.result.backup_dir


@dataclass
class TemplateCheckResult:
    """Outcome of rendering the template set for one tier and sample configuration."""

    tier: Tier
    sample: str
    artifacts: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


class ProjectInfo(BaseModel):
    """What tiergen knows about an existing project directory."""

    name: str
    module: str = "unknown"
    tier: Optional[Tier] = None
    version: str = "unknown"
    path: Path
    managed: bool = Field(default=False, description="True when a generation manifest was found")
    features: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ScaffoldEngine:
    """Generates and migrates tiered service projects."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        validator: Optional[ProjectValidator] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.resolver = ConfigResolver()
        self.repository = TemplateRepository(self.settings.templates_dir)
        self.materializer = FileMaterializer(
            manifest_name=self.settings.manifest_name, max_workers=self.settings.max_workers
        )
        self.validator = validator or ProjectValidator(timeout=self.settings.validator_timeout)

    # -- Shared steps --------------------------------------------------------

    async def render(
        self, resolved: ResolvedConfiguration, *, generated_at: Optional[str] = None
    ) -> list[RenderedFile]:
        """Resolve the artifact set for *resolved* and render every artifact."""
        artifacts = self.repository.resolve_artifacts(resolved)
        renderer = RenderEngine(self.settings.templates_dir, generated_at=generated_at)
        return await renderer.render_all(artifacts, resolved, max_workers=self.settings.max_workers)

    async def _validate(self, root: Path, fail_on_invalid: bool) -> ValidationReport:
        print_step_header("validate", f" {root}")
        report = await self.validator.validate(root)
        if not report.passed:
            if fail_on_invalid:
                raise ValidationFailure(report.failed_checks, report)
            print_warning(f"Validation failed: {', '.join(report.failed_checks)} (files were kept)")
        return report

    # -- Generate ------------------------------------------------------------

    async def generate(
        self,
        config: ProjectConfiguration,
        *,
        dry_run: bool = False,
        validate: bool = True,
        fail_on_invalid: bool = False,
        generated_at: Optional[str] = None,
    ) -> GenerationOutcome:
        """Generate a new project.

        Raises:
            ConfigValidationError: The configuration is invalid.
            AlreadyExistsError: The output directory already holds a manifest
                (also in dry-run mode).
            TemplateNotFoundError, RenderError: Template set defect; nothing
                is written.
            FileWriteError: I/O failure while writing.
            ValidationFailure: Validation failed and *fail_on_invalid* is set.
        """
        timestamp = generated_at or utc_timestamp()

        print_step_header("resolve", f" {config.name or '?'} @ {config.tier}")
        resolved = self.resolver.resolve(config)
        root = resolved.output_dir
        manifest_path = self.settings.manifest_path(root)
        if manifest_path.exists():
            raise AlreadyExistsError(manifest_path)

        print_step_header("render", f" {resolved.tier.value}")
        files = await self.render(resolved, generated_at=timestamp)

        print_step_header("write", f" {root}" + (" (dry run)" if dry_run else ""))
        mode = MaterializeMode.DRY_RUN if dry_run else MaterializeMode.CREATE
        materialization = await self.materializer.materialize(
            files, root, mode, resolved=resolved, generated_at=timestamp
        )

        validation = None
        if validate and not dry_run:
            validation = await self._validate(root, fail_on_invalid)

        if not dry_run:
            print_success(f"Generated {len(materialization.written)} file(s) in {root}")
        return GenerationOutcome(
            state=RunState.COMPLETE,
            resolved=resolved,
            materialization=materialization,
            validation=validation,
        )

    # -- Migrate -------------------------------------------------------------

    async def migrate(
        self,
        project_root: str | Path,
        target_tier: Tier | str,
        *,
        feature_overrides: Optional[dict[str, bool]] = None,
        components: Optional[Sequence[str]] = None,
        backup: bool = True,
        dry_run: bool = False,
        validate: bool = True,
        fail_on_invalid: bool = False,
        generated_at: Optional[str] = None,
    ) -> MigrationOutcome:
        """Migrate a generated project to *target_tier*.

        Conflicting files are never written; the outcome ends in
        ``partial_success`` and lists them.  With *backup* set, files about to
        be overwritten or deleted are first copied to
        ``<project_root>.backup.<timestamp>``.  *components* limits the
        writes to those component groups (see ``COMPONENTS``).

        Raises:
            ManifestError: *project_root* holds no readable manifest.
            ConfigValidationError: Unknown tier, or the merged configuration
                is invalid.
            FileWriteError: I/O failure while applying; the prior manifest is
                left in place.
            ValidationFailure: Validation failed and *fail_on_invalid* is set.
        """
        timestamp = generated_at or utc_timestamp()
        root = Path(project_root)
        prior = GenerationManifest.load(self.settings.manifest_path(root))
        selected = _parse_components(components)

        try:
            target = Tier.parse(target_tier)
        except ValueError as exc:
            raise ConfigValidationError([f"tier: {exc}"]) from exc

        source = prior.tier
        tier_path = migration_path(source or target, target)
        print_step_header(
            "resolve", f" {' -> '.join(t.value for t in tier_path)}"
        )
        if source is not None and target < source:
            print_warning(
                f"Downgrading from {source.value} to {target.value}: files only generated for "
                f"{source.value} will be removed unless you edited them."
            )

        config = prior.project_configuration(tier=target, output_dir=root)
        if feature_overrides:
            merged = dict(config.features)
            merged.update({normalize_flag(k): v for k, v in feature_overrides.items()})
            config = config.model_copy(update={"features": merged})
        resolved = self.resolver.resolve(config)

        print_step_header("render", f" {target.value}")
        files = await self.render(resolved, generated_at=timestamp)

        print_step_header("plan", f" {len(files)} rendered file(s)")
        migrator = MigrationEngine(
            self.settings.max_workers,
            write_proposals=self.settings.write_proposals,
            proposal_suffix=self.settings.proposal_suffix,
        )
        plan = await migrator.plan(prior, files, root, target_tier=target)
        self._log_plan(plan)

        print_step_header("write", f" {root}" + (" (dry run)" if dry_run else ""))
        result = await migrator.apply(
            plan,
            root,
            resolved,
            self.materializer,
            dry_run=dry_run,
            generated_at=timestamp,
            components=selected,
            backup=backup,
        )
        if result.backup_dir is not None:
            print_success(f"Backup created: {result.backup_dir}")
        if result.deferred:
            print_warning(
                f"{len(result.deferred)} file(s) outside the selected components were left unchanged"
            )

        validation = None
        if validate and not dry_run:
            validation = await self._validate(root, fail_on_invalid)

        if result.state is RunState.COMPLETE and not dry_run:
            print_success(f"Migrated {root} to {target.value}")
        return MigrationOutcome(
            state=result.state,
            resolved=resolved,
            source_tier=source,
            target_tier=target,
            tier_path=tier_path,
            result=result,
            validation=validation,
        )

    async def update(
        self,
        project_root: str | Path,
        *,
        components: Optional[Sequence[str]] = None,
        backup: bool = True,
        dry_run: bool = False,
        validate: bool = True,
        fail_on_invalid: bool = False,
        generated_at: Optional[str] = None,
    ) -> MigrationOutcome:
        """Re-render a project at its recorded tier with the current templates."""
        root = Path(project_root)
        prior = GenerationManifest.load(self.settings.manifest_path(root))
        return await self.migrate(
            root,
            prior.tier or Tier.BASIC,
            components=components,
            backup=backup,
            dry_run=dry_run,
            validate=validate,
            fail_on_invalid=fail_on_invalid,
            generated_at=generated_at,
        )

    # -- Inspection ----------------------------------------------------------

    def check_templates(self, tier: Tier | str | None = None) -> list[TemplateCheckResult]:
        """Render the template set for each tier with sample configurations.

        Every tier is checked twice: with its default features and with every
        feature switched on, so flag-gated artifacts are rendered too.  All
        missing sources and render failures are collected, not just the first.

        Raises:
            ConfigValidationError: *tier* is not a known tier.
        """
        try:
            tiers = [Tier.parse(tier)] if tier is not None else list(Tier)
        except ValueError as exc:
            raise ConfigValidationError([f"tier: {exc}"]) from exc

        renderer = RenderEngine(self.settings.templates_dir, generated_at=_SAMPLE_TIMESTAMP)
        results: list[TemplateCheckResult] = []
        for current in tiers:
            for sample, features in (("defaults", {}), ("all features", _ALL_FEATURES)):
                config = ProjectConfiguration(
                    name=_SAMPLE_NAME,
                    module=f"github.com/example/{_SAMPLE_NAME}",
                    tier=current.value,
                    features=dict(features),
                )
                resolved = self.resolver.resolve(config)
                check = TemplateCheckResult(tier=current, sample=sample)
                try:
                    artifacts = self.repository.resolve_artifacts(resolved)
                except TemplateNotFoundError as exc:
                    check.problems.append(str(exc))
                    artifacts = [
                        a for a in self.repository.list_artifacts(current) if a.applies_to(resolved)
                    ]
                check.artifacts = len(artifacts)
                for artifact in artifacts:
                    try:
                        renderer.render(artifact, resolved)
                    except (TemplateNotFoundError, RenderError) as exc:
                        check.problems.append(str(exc))
                results.append(check)
        return results


    def detect_project(self, project_root: str | Path) -> ProjectInfo:
        """Describe an existing project from its manifest or, failing that, its layout."""
        root = Path(project_root)
        manifest_path = self.settings.manifest_path(root)
        if manifest_path.is_file():
            manifest = GenerationManifest.load(manifest_path)
            return ProjectInfo(
                name=manifest.project.name,
                module=manifest.project.module,
                tier=manifest.tier,
                version=manifest.project.version,
                path=root,
                managed=True,
                features=sorted(k for k, v in manifest.features.items() if v),
            )
        return _analyze_structure(root)

    # -- Reporting -----------------------------------------------------------

    @staticmethod
    def _log_plan(plan: MigrationPlan) -> None:
        table = Table(title="Migration plan", show_header=True, header_style="bold cyan")
        table.add_column("File", no_wrap=True)
        table.add_column("Decision")
        table.add_column("Reason", style="dim")
        for decision in plan.decisions:
            if decision.kind is DecisionKind.UNCHANGED:
                continue
            style = _DECISION_STYLE[decision.kind]
            table.add_row(decision.path, f"[{style}]{decision.kind.value}[/{style}]", decision.reason)
        console.print(table)
        counts = ", ".join(f"{k}={v}" for k, v in plan.summary().items() if v)
        console.print(f"[dim]{counts or 'nothing to do'}[/dim]")


# ---------------------------------------------------------------------------
# Structural detection for projects without a manifest
# ---------------------------------------------------------------------------

_MODULE_LINE = re.compile(r"^module\s+(\S+)", re.MULTILINE)


def _analyze_structure(root: Path) -> ProjectInfo:
    module = "unknown"
    go_mod = root / "go.mod"
    if go_mod.is_file():
        match = _MODULE_LINE.search(go_mod.read_text(encoding="utf-8", errors="replace"))
        if match:
            module = match.group(1)

    tier = Tier.BASIC
    if (root / "internal" / "security").exists() or (root / "internal" / "compliance").exists():
        tier = Tier.ENTERPRISE
    elif (root / "internal" / "events").exists():
        tier = Tier.ADVANCED
    elif (root / "internal" / "handlers" / "dependencies.go").exists():
        tier = Tier.INTERMEDIATE

    return ProjectInfo(name=root.resolve().name, module=module, tier=tier, path=root)


def _parse_components(components: Optional[Sequence[str]]) -> Optional[frozenset[str]]:
    """Normalise a component selection; ``None`` or empty selects everything."""
    if not components:
        return None
    selected = frozenset(c.strip().lower() for c in components if c.strip())
    unknown = sorted(selected - set(COMPONENTS))
    if unknown:
        raise ConfigValidationError(
            [f"components: unknown component '{c}' (known: {', '.join(COMPONENTS)})" for c in unknown]
        )
    return selected or None
