"""Command-line interface for tiergen.

Usage::

    tiergen generate --name svc --tier intermediate
    tiergen migrate --to enterprise --target ./svc
    tiergen update --target ./svc --dry-run
    tiergen template list --tier advanced
    tiergen template validate
    tiergen validate ./svc

Exit codes: 0 complete, 2 invalid configuration, 3 conflicts need manual
resolution, 4 project already exists, 5 fatal error, 6 validation failed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import TOOL_VERSION, Settings
from .engine import GenerationOutcome, MigrationOutcome, ScaffoldEngine
from .errors import (
    EXIT_CONFIG_INVALID,
    EXIT_FATAL,
    EXIT_OK,
    EXIT_VALIDATION_FAILED,
    ConfigValidationError,
    MigrationConflict,
    TiergenError,
)
from .resolver import ConfigResolver, Feature, ProjectConfiguration, Tier, list_tier_definitions
from .resolver.models import normalize_flag
from .scaffolder import COMPONENTS
from .utils import atomic_write, console, print_error, print_success, print_summary_table, print_warning
from .validator import ProjectValidator


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _split_flags(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [normalize_flag(v) for v in value.split(",") if v.strip()]


def _split_components(value: Optional[str]) -> Optional[list[str]]:
    if not value:
        return None
    return [c.strip() for c in value.split(",") if c.strip()]


def _add_feature_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--features", "-f",
        default=None,
        help="Comma-separated features to enable (e.g. metrics,ingress)",
    )
    parser.add_argument(
        "--disable",
        default=None,
        help="Comma-separated features to disable",
    )


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    parser.add_argument("--show-diff", action="store_true", help="Print unified diffs in dry-run mode")
    parser.add_argument("--no-validate", action="store_true", help="Skip build and syntax validation")
    parser.add_argument(
        "--fail-on-invalid",
        action="store_true",
        help="Exit with status 6 when validation fails",
    )


def _add_backup_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--backup",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Copy files about to be overwritten or deleted to <target>.backup.<timestamp> (default: on)",
    )


def build_parser() -> argparse.ArgumentParser:
    tiers = ", ".join(t.value for t in Tier)
    parser = argparse.ArgumentParser(
        prog="tiergen",
        description="tiergen -- tiered Go service scaffolding generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  tiergen generate --name svc --tier intermediate\n"
            "  tiergen generate --config svc.yaml --dry-run\n"
            "  tiergen migrate --to enterprise --target ./svc\n"
            "  tiergen template list --tier advanced\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"tiergen {TOOL_VERSION}")
    parser.add_argument(
        "--templates-dir",
        default=None,
        help="Template set to use instead of the bundled one",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a new project")
    gen.add_argument("--name", "-n", default=None, help="Project name (required unless in --config)")
    gen.add_argument("--module", "-m", default=None, help="Go module path (default: github.com/example/<name>)")
    gen.add_argument("--tier", "-t", default=None, help=f"Tier: {tiers} (default: basic)")
    gen.add_argument("--output", "-o", default=None, help="Output directory (default: project name)")
    gen.add_argument("--description", "-d", default=None, help="Project description")
    gen.add_argument("--config", "-c", default=None, help="YAML/JSON project configuration file")
    _add_feature_args(gen)
    _add_run_args(gen)

    mig = sub.add_parser("migrate", help="Migrate a generated project to another tier")
    mig.add_argument("--to", required=True, dest="to_tier", help=f"Target tier: {tiers}")
    mig.add_argument("--target", default=".", help="Project directory (default: .)")
    _add_feature_args(mig)
    _add_backup_args(mig)
    _add_run_args(mig)

    upd = sub.add_parser("update", help="Refresh a project to the installed templates")
    upd.add_argument("--target", default=".", help="Project directory (default: .)")
    upd.add_argument(
        "--components",
        default=None,
        help=f"Comma-separated components to update: {', '.join(COMPONENTS)} (default: all)",
    )
    _add_backup_args(upd)
    _add_run_args(upd)

    cus = sub.add_parser("customize", help="Generate from a configuration file with overrides")
    cus.add_argument("--config", "-c", required=True, help="YAML/JSON project configuration file")
    cus.add_argument("--tier", "-t", default=None, help=f"Override the tier: {tiers}")
    cus.add_argument("--output", "-o", default=None, help="Override the output directory")
    cus.add_argument("--save-profile", default=None, metavar="FILE", help="Write the resolved configuration as YAML")
    _add_feature_args(cus)
    _add_run_args(cus)

    tpl = sub.add_parser("template", help="Inspect the template set")
    tpl_sub = tpl.add_subparsers(dest="template_command", required=True)
    tpl_list = tpl_sub.add_parser("list", help="List template artifacts")
    tpl_list.add_argument("--tier", "-t", default=None, help="Only artifacts included for this tier")
    tpl_show = tpl_sub.add_parser("show", help="Show one template artifact")
    tpl_show.add_argument("id", help="Artifact id")
    tpl_validate = tpl_sub.add_parser("validate", help="Render every artifact of each tier with sample configurations")
    tpl_validate.add_argument("--tier", "-t", default=None, help="Only check this tier")

    sub.add_parser("tiers", help="List tiers and their default features")

    val = sub.add_parser("validate", help="Validate a generated project")
    val.add_argument("directory", nargs="?", default=".", help="Project directory (default: .)")

    return parser


# ---------------------------------------------------------------------------
# Configuration assembly
# ---------------------------------------------------------------------------


def _feature_overrides(args: argparse.Namespace) -> dict[str, bool]:
    overrides = {flag: True for flag in _split_flags(args.features)}
    overrides.update({flag: False for flag in _split_flags(args.disable)})
    return overrides


def build_configuration(args: argparse.Namespace) -> ProjectConfiguration:
    """Merge ``--config`` file values with command-line flags (flags win)."""
    config_file = getattr(args, "config", None)
    config = ProjectConfiguration.from_file(config_file) if config_file else ProjectConfiguration()

    updates: dict = {}
    name = getattr(args, "name", None)
    if name:
        updates["name"] = name
    effective_name = updates.get("name", config.name)
    module = getattr(args, "module", None)
    if module:
        updates["module"] = module
    elif not config.module and effective_name:
        updates["module"] = f"github.com/example/{effective_name}"
    if args.tier:
        updates["tier"] = args.tier
    description = getattr(args, "description", None)
    if description is not None:
        updates["description"] = description
    if args.output:
        updates["output_dir"] = Path(args.output)

    overrides = _feature_overrides(args)
    if overrides:
        updates["features"] = {**config.features, **overrides}

    return config.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _report_generation(outcome: GenerationOutcome, show_diff: bool) -> None:
    resolved = outcome.resolved
    print_summary_table(
        {
            "Project": resolved.name,
            "Module": resolved.module,
            "Tier": resolved.tier.value,
            "Features": ", ".join(f.value for f in resolved.enabled_features()) or "-",
            "Output": str(outcome.output_root),
            "Files": str(len(outcome.manifest.files)),
        },
        title="Dry run" if outcome.materialization.dry_run else "Generated",
    )
    if outcome.materialization.dry_run:
        for path in sorted(outcome.manifest.files):
            console.print(f"  [green]+[/green] {path}")
        if show_diff:
            _print_diffs(outcome.diffs)


def _print_diffs(diffs: dict[str, str]) -> None:
    for path in sorted(diffs):
        console.print(Panel(Text(diffs[path]), title=escape(path), expand=False))


def _cmd_generate(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    config = build_configuration(args)
    outcome = asyncio.run(
        engine.generate(
            config,
            dry_run=args.dry_run,
            validate=not args.no_validate,
            fail_on_invalid=args.fail_on_invalid,
        )
    )
    _report_generation(outcome, args.show_diff)
    return EXIT_OK


def _report_migration(outcome: MigrationOutcome, show_diff: bool) -> int:
    plan = outcome.plan
    print_summary_table(
        {
            "Tiers": " -> ".join(t.value for t in outcome.tier_path),
            "Direction": "downgrade" if outcome.downgrade else "upgrade/refresh",
            "State": outcome.state.value,
            **{kind: str(count) for kind, count in plan.summary().items() if count},
            **({"Backup": str(outcome.backup_dir)} if outcome.backup_dir else {}),
            **({"Deferred": str(len(outcome.result.deferred))} if outcome.result.deferred else {}),
        },
        title="Migration",
    )
    if outcome.result.materialization.dry_run and show_diff:
        _print_diffs(outcome.result.materialization.diffs)
    if plan.has_conflicts:
        conflict = MigrationConflict(outcome.result.conflict_report())
        print_warning(escape(conflict.describe()))
        for path, live, proposed in conflict.conflicts:
            console.print(f"  [red]![/red] {path}\n      live:     {live}\n      proposed: {proposed}")
        return conflict.exit_code
    return EXIT_OK


def _print_project_info(engine: ScaffoldEngine, target: Path, to_tier: Optional[str]) -> None:
    info = engine.detect_project(target)
    if not info.managed:
        detected = info.tier.value if info.tier else "unknown"
        print_warning(
            f"No generation manifest in {target}; the layout looks like a '{detected}' "
            f"project (module {info.module})."
        )
        return
    console.print(
        f"[bold]{info.name}[/bold] ({info.module}) at tier "
        f"[cyan]{info.tier.value if info.tier else '?'}[/cyan]"
        + (f" -> [cyan]{to_tier}[/cyan]" if to_tier else "")
    )


def _cmd_migrate(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    target = Path(args.target)
    _print_project_info(engine, target, args.to_tier)
    outcome = asyncio.run(
        engine.migrate(
            target,
            args.to_tier,
            feature_overrides=_feature_overrides(args) or None,
            backup=args.backup,
            dry_run=args.dry_run,
            validate=not args.no_validate,
            fail_on_invalid=args.fail_on_invalid,
        )
    )
    return _report_migration(outcome, args.show_diff)


def _cmd_update(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    target = Path(args.target)
    _print_project_info(engine, target, None)
    outcome = asyncio.run(
        engine.update(
            target,
            components=_split_components(args.components),
            backup=args.backup,
            dry_run=args.dry_run,
            validate=not args.no_validate,
            fail_on_invalid=args.fail_on_invalid,
        )
    )
    return _report_migration(outcome, args.show_diff)


def _cmd_customize(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    config = build_configuration(args)
    resolved = ConfigResolver().resolve(config)

    table = Table(title=f"{resolved.name} @ {resolved.tier.value}", header_style="bold cyan")
    table.add_column("Feature")
    table.add_column("Enabled")
    table.add_column("Source", style="dim")
    for feature in Feature:
        enabled = resolved.enabled(feature)
        source = "override" if feature.value in resolved.feature_overrides else "tier/derived"
        table.add_row(feature.value, "[green]yes[/green]" if enabled else "[dim]no[/dim]", source)
    console.print(table)

    if args.save_profile:
        profile = Path(args.save_profile)
        atomic_write(profile, resolved.to_project_configuration().to_yaml().encode("utf-8"))
        print_success(f"Profile saved to {profile}")

    outcome = asyncio.run(
        engine.generate(
            config,
            dry_run=args.dry_run,
            validate=not args.no_validate,
            fail_on_invalid=args.fail_on_invalid,
        )
    )
    _report_generation(outcome, args.show_diff)
    return EXIT_OK


def _validate_templates(engine: ScaffoldEngine, tier: Optional[str]) -> int:
    results = engine.check_templates(tier)
    table = Table(title="Template validation", header_style="bold cyan")
    table.add_column("Tier", no_wrap=True)
    table.add_column("Sample")
    table.add_column("Artifacts", justify="right")
    table.add_column("Status")
    for check in results:
        status = "[green]ok[/green]" if check.ok else f"[red]{len(check.problems)} problem(s)[/red]"
        table.add_row(check.tier.value, check.sample, str(check.artifacts), status)
    console.print(table)

    failed = [check for check in results if not check.ok]
    for check in failed:
        for problem in check.problems:
            print_error(escape(f"{check.tier.value} ({check.sample}): {problem}"))
    if failed:
        return EXIT_FATAL
    print_success("Every template rendered")
    return EXIT_OK


def _cmd_template(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    repository = engine.repository
    if args.template_command == "validate":
        return _validate_templates(engine, args.tier)
    if args.template_command == "list":
        tier = None
        if args.tier:
            try:
                tier = Tier.parse(args.tier)
            except ValueError as exc:
                raise ConfigValidationError([f"tier: {exc}"]) from exc
        table = Table(title="Template artifacts", header_style="bold cyan")
        table.add_column("Id", no_wrap=True)
        table.add_column("Output")
        table.add_column("Tiers")
        table.add_column("Flags", style="dim")
        for artifact in repository.list_artifacts(tier):
            tiers = ", ".join(t.value for t in artifact.tiers) + ("+" if artifact.shared else "")
            table.add_row(
                artifact.id,
                artifact.output_path,
                tiers,
                ", ".join(f.value for f in artifact.flags) or "-",
            )
        console.print(table)
        return EXIT_OK

    artifact = repository.get(args.id)
    print_summary_table(
        {
            "Id": artifact.id,
            "Source": artifact.source,
            "Output": artifact.output_path,
            "Tiers": ", ".join(t.value for t in artifact.tiers),
            "Shared": "yes" if artifact.shared else "no",
            "Flags": ", ".join(f.value for f in artifact.flags) or "-",
            "Requires": ", ".join(artifact.requires) or "-",
            "Description": artifact.description or "-",
        },
        title="Template artifact",
    )
    console.print(repository.source_text(artifact), markup=False, highlight=False)
    return EXIT_OK


def _cmd_tiers(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    table = Table(title="Tiers", header_style="bold cyan")
    table.add_column("Tier", no_wrap=True)
    table.add_column("Description")
    table.add_column("Default features", style="dim")
    for definition in list_tier_definitions():
        table.add_row(
            definition.tier.value,
            definition.description,
            ", ".join(f.value for f in definition.enabled_features()),
        )
    console.print(table)
    return EXIT_OK


def _cmd_validate(engine: ScaffoldEngine, args: argparse.Namespace) -> int:
    report = asyncio.run(engine.validator.validate(Path(args.directory)))
    if report.passed:
        print_success("Validation passed")
        return EXIT_OK
    print_error(f"Validation failed: {', '.join(report.failed_checks)}")
    return EXIT_VALIDATION_FAILED


_HANDLERS = {
    "generate": _cmd_generate,
    "migrate": _cmd_migrate,
    "update": _cmd_update,
    "customize": _cmd_customize,
    "template": _cmd_template,
    "tiers": _cmd_tiers,
    "validate": _cmd_validate,
}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for ``tiergen`` and ``python -m tiergen.cli``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        if args.templates_dir:
            settings = settings.model_copy(update={"templates_dir": Path(args.templates_dir)})
    except (ValueError, ValidationError) as exc:
        print_error(f"Invalid TIERGEN_* environment setting: {exc}")
        return EXIT_CONFIG_INVALID

    try:
        engine = ScaffoldEngine(
            settings, validator=ProjectValidator(timeout=settings.validator_timeout)
        )
        return _HANDLERS[args.command](engine, args)
    except TiergenError as exc:
        print_error(escape(exc.describe()))
        return exc.exit_code


if __name__ == "__main__":
    sys.exit(main())
