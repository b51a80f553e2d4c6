"""Static tier definition table.

Maps each tier to its default feature flags, dependency checks and Kubernetes
probe settings.  The table is built once at import time and never mutated.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from .models import DependencyCheck, Feature, HealthProbes, ProbeSettings, Tier, TierDefinition


DEFAULT_PROBES = HealthProbes(
    liveness=ProbeSettings(
        path="/health/live",
        initial_delay_seconds=30,
        period_seconds=10,
        timeout_seconds=5,
        failure_threshold=3,
        success_threshold=1,
    ),
    readiness=ProbeSettings(
        path="/health/ready",
        initial_delay_seconds=5,
        period_seconds=5,
        timeout_seconds=3,
        failure_threshold=3,
        success_threshold=1,
    ),
    startup=ProbeSettings(
        path="/health/startup",
        initial_delay_seconds=10,
        period_seconds=10,
        timeout_seconds=5,
        failure_threshold=30,
        success_threshold=1,
    ),
)

# Features each tier switches on; everything else defaults to off.
_TIER_FEATURES: dict[Tier, frozenset[Feature]] = {
    Tier.BASIC: frozenset({Feature.KUBERNETES, Feature.TYPESCRIPT, Feature.DOCKER}),
    Tier.INTERMEDIATE: frozenset(
        {Feature.KUBERNETES, Feature.TYPESCRIPT, Feature.DOCKER, Feature.OPENTELEMETRY}
    ),
    Tier.ADVANCED: frozenset(
        {
            Feature.KUBERNETES,
            Feature.TYPESCRIPT,
            Feature.DOCKER,
            Feature.OPENTELEMETRY,
            Feature.SERVER_TIMING,
            Feature.CLOUDEVENTS,
        }
    ),
    Tier.ENTERPRISE: frozenset(Feature),
}

_TIER_DEPENDENCY_CHECKS: dict[Tier, frozenset[DependencyCheck]] = {
    Tier.BASIC: frozenset({DependencyCheck.FILESYSTEM, DependencyCheck.MEMORY}),
    Tier.INTERMEDIATE: frozenset(DependencyCheck),
    Tier.ADVANCED: frozenset(DependencyCheck),
    Tier.ENTERPRISE: frozenset(DependencyCheck),
}


def _build_table() -> Mapping[Tier, TierDefinition]:
    table = {
        tier: TierDefinition(
            tier=tier,
            features={f: f in _TIER_FEATURES[tier] for f in Feature},
            dependency_checks={d: d in _TIER_DEPENDENCY_CHECKS[tier] for d in DependencyCheck},
            probes=DEFAULT_PROBES,
        )
        for tier in Tier
    }
    return MappingProxyType(table)


TIER_DEFINITIONS: Mapping[Tier, TierDefinition] = _build_table()


def get_tier_definition(tier: Tier | str) -> TierDefinition:
    """Return the definition for *tier*.

    Raises:
        ValueError: If *tier* is not a known tier name.
    """
    return TIER_DEFINITIONS[Tier.parse(tier)]


def list_tier_definitions() -> list[TierDefinition]:
    """All tier definitions, lowest tier first."""
    return [TIER_DEFINITIONS[t] for t in Tier]


def migration_path(source: Tier, target: Tier) -> list[Tier]:
    """Tiers traversed when moving from *source* to *target*, both inclusive.

    Downgrades walk the order in reverse, e.g. enterprise -> advanced.
    """
    tiers = list(Tier)
    lo, hi = sorted((source.rank, target.rank))
    path = tiers[lo : hi + 1]
    if source > target:
        path.reverse()
    return path
