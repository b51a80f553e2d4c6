"""Tier definitions and configuration resolution.

Quick usage::

    from tiergen.resolver import ConfigResolver, ProjectConfiguration

    resolved = ConfigResolver().resolve(
        ProjectConfiguration(name="svc", module="example.com/svc", tier="enterprise")
    )
    assert resolved.enabled("security")
"""

from .models import (
    DependencyCheck,
    Feature,
    HealthProbes,
    ProbeSettings,
    ProjectConfiguration,
    ResolvedConfiguration,
    Tier,
    TierDefinition,
)
from .resolver import IMPLICATIONS, ConfigResolver
from .tiers import TIER_DEFINITIONS, get_tier_definition, list_tier_definitions, migration_path

__all__ = [
    "IMPLICATIONS",
    "TIER_DEFINITIONS",
    "ConfigResolver",
    "DependencyCheck",
    "Feature",
    "HealthProbes",
    "ProbeSettings",
    "ProjectConfiguration",
    "ResolvedConfiguration",
    "Tier",
    "TierDefinition",
    "get_tier_definition",
    "list_tier_definitions",
    "migration_path",
]
