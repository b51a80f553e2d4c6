"""Resolve a ``ProjectConfiguration`` into a ``ResolvedConfiguration``.

Resolution starts from the tier defaults, applies the user's explicit
overrides in sorted flag order, then re-applies the derived constraints until
nothing changes.  Every violated constraint is collected and reported in a
single ``ConfigValidationError``.
"""

from __future__ import annotations

import re
from pathlib import Path

from ..errors import ConfigValidationError
from .models import (
    DependencyCheck,
    Feature,
    ProjectConfiguration,
    ResolvedConfiguration,
    Tier,
    normalize_flag,
)
from .tiers import get_tier_definition


# ---------------------------------------------------------------------------
# Derived constraints
# ---------------------------------------------------------------------------

# (antecedent, consequent): enabling the first requires the second.
IMPLICATIONS: tuple[tuple[Feature, Feature], ...] = (
    (Feature.COMPLIANCE, Feature.SECURITY),
    (Feature.SERVICE_MONITOR, Feature.METRICS),
    (Feature.SERVICE_MONITOR, Feature.KUBERNETES),
    (Feature.INGRESS, Feature.KUBERNETES),
    (Feature.METRICS, Feature.OPENTELEMETRY),
)

# Each pass can only switch flags on, so the loop converges within one pass
# per implication plus the confirming pass.
MAX_PASSES = len(IMPLICATIONS) + 1

_INVALID_NAME_CHARS = re.compile(r"[\s/\\]")


class ConfigResolver:
    """Merges user configuration with tier defaults and validates the result."""

    def resolve(self, config: ProjectConfiguration) -> ResolvedConfiguration:
        """Return the fully populated configuration for *config*.

        Raises:
            ConfigValidationError: Listing every violated constraint.
        """
        violations: list[str] = []

        name = config.name.strip()
        module = config.module.strip()
        if not name:
            violations.append("name: project name is required")
        elif _INVALID_NAME_CHARS.search(name) or name in (".", ".."):
            violations.append(
                f"name: '{config.name}' must not contain whitespace or path separators"
            )
        if not module:
            violations.append("module: module path is required")
        elif re.search(r"\s", module):
            violations.append(f"module: '{config.module}' must not contain whitespace")

        tier: Tier | None = None
        try:
            tier = Tier.parse(config.tier)
        except ValueError as exc:
            violations.append(f"tier: {exc}")

        feature_overrides = _parse_overrides(config.features, Feature, "features", violations)
        dependency_overrides = _parse_overrides(
            config.dependency_checks, DependencyCheck, "dependency_checks", violations
        )

        features: dict[Feature, bool] = {}
        dependency_checks: dict[DependencyCheck, bool] = {}
        if tier is not None:
            definition = get_tier_definition(tier)
            features = dict(definition.features)
            dependency_checks = dict(definition.dependency_checks)
            for flag in sorted(feature_overrides, key=lambda f: f.value):
                features[flag] = feature_overrides[flag]
            for check in sorted(dependency_overrides, key=lambda d: d.value):
                dependency_checks[check] = dependency_overrides[check]
            violations.extend(_apply_implications(features, feature_overrides))

        if violations:
            raise ConfigValidationError(violations)

        assert tier is not None
        probes = get_tier_definition(tier).probes if features[Feature.KUBERNETES] else None
        output_dir = config.output_dir if config.output_dir else Path(name)

        return ResolvedConfiguration(
            name=name,
            module=module,
            tier=tier,
            description=config.description,
            version=config.version or "1.0.0",
            features=features,
            dependency_checks=dependency_checks,
            probes=probes,
            output_dir=Path(output_dir),
            feature_overrides={f.value: v for f, v in sorted(feature_overrides.items(), key=lambda i: i[0].value)},
            dependency_overrides={
                d.value: v for d, v in sorted(dependency_overrides.items(), key=lambda i: i[0].value)
            },
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_overrides(raw: dict[str, bool], enum_cls, field: str, violations: list[str]) -> dict:
    """Convert a sparse ``{name: bool}`` map into enum keys, recording unknown names."""
    parsed = {}
    for key in sorted(raw):
        try:
            parsed[enum_cls.parse(key)] = bool(raw[key])
        except ValueError:
            valid = ", ".join(e.value for e in enum_cls)
            violations.append(
                f"{field}.{key}: unknown flag '{normalize_flag(key)}' (known: {valid})"
            )
    return parsed


def _apply_implications(
    features: dict[Feature, bool], explicit: dict[Feature, bool]
) -> list[str]:
    """Switch on implied features until a fixed point; return contradictions.

    A contradiction is an implied feature the user explicitly disabled.
    """
    violations: list[str] = []
    reported: set[tuple[Feature, Feature]] = set()
    for _ in range(MAX_PASSES):
        changed = False
        for antecedent, consequent in IMPLICATIONS:
            if not features[antecedent] or features[consequent]:
                continue
            if explicit.get(consequent) is False:
                if (antecedent, consequent) not in reported:
                    reported.add((antecedent, consequent))
                    violations.append(
                        f"features.{consequent.value}: '{antecedent.value}' requires "
                        f"'{consequent.value}', which was explicitly disabled"
                    )
                continue
            features[consequent] = True
            changed = True
        if not changed:
            return violations
    raise RuntimeError("feature implications did not converge; the constraint table has a cycle")
