"""Pydantic v2 models for tier and project configuration.

Defines the closed enumerations of tiers, feature flags and dependency checks,
the user-facing ``ProjectConfiguration`` and the fully populated, immutable
``ResolvedConfiguration`` every downstream component consumes.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..errors import ConfigValidationError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Tier(str, Enum):
    """Complexity tier of a generated project, ordered basic < enterprise."""
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return list(Tier).index(self)

    @property
    def description(self) -> str:
        return _TIER_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: "str | Tier") -> "Tier":
        """Return the tier named *value* (case-insensitive).

        Raises:
            ValueError: If *value* names no tier.
        """
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"invalid tier '{value}' (must be one of: {valid})") from None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Tier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_DESCRIPTIONS: dict[Tier, str] = {
    Tier.BASIC: "Basic health endpoints with ServerTime API (~5 min deployment)",
    Tier.INTERMEDIATE: "Production-ready with dependency checks and basic observability (~15 min deployment)",
    Tier.ADVANCED: "Full observability with OpenTelemetry and CloudEvents (~30 min deployment)",
    Tier.ENTERPRISE: "Enterprise-grade with compliance and advanced monitoring (~45 min deployment)",
}


class Feature(str, Enum):
    """Feature flags that gate template artifacts."""
    OPENTELEMETRY = "opentelemetry"
    SERVER_TIMING = "server_timing"
    CLOUDEVENTS = "cloudevents"
    KUBERNETES = "kubernetes"
    TYPESCRIPT = "typescript"
    DOCKER = "docker"
    SECURITY = "security"
    COMPLIANCE = "compliance"
    METRICS = "metrics"
    SERVICE_MONITOR = "service_monitor"
    INGRESS = "ingress"

    @classmethod
    def parse(cls, value: "str | Feature") -> "Feature":
        """Return the feature named *value*; ``server-timing`` == ``server_timing``."""
        if isinstance(value, Feature):
            return value
        return cls(normalize_flag(value))


class DependencyCheck(str, Enum):
    """Dependency health checks a generated service performs."""
    DATABASE = "database"
    CACHE = "cache"
    FILESYSTEM = "filesystem"
    MEMORY = "memory"

    @classmethod
    def parse(cls, value: "str | DependencyCheck") -> "DependencyCheck":
        if isinstance(value, DependencyCheck):
            return value
        name = normalize_flag(value)
        if name.endswith("_checks"):
            name = name[: -len("_checks")]
        return cls(name)


def normalize_flag(name: str) -> str:
    """Lower-case a flag name and turn hyphens/spaces into underscores."""
    return str(name).strip().lower().replace("-", "_").replace(" ", "_")


# ---------------------------------------------------------------------------
# Kubernetes probe settings
# ---------------------------------------------------------------------------

class ProbeSettings(BaseModel):
    """A single Kubernetes health probe."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    path: str
    initial_delay_seconds: int = Field(default=0, ge=0)
    period_seconds: int = Field(default=10, ge=1)
    timeout_seconds: int = Field(default=1, ge=1)
    failure_threshold: int = Field(default=3, ge=1)
    success_threshold: int = Field(default=1, ge=1)


class HealthProbes(BaseModel):
    """Liveness, readiness and startup probes for the generated deployment."""
    model_config = ConfigDict(frozen=True)

    liveness: ProbeSettings
    readiness: ProbeSettings
    startup: ProbeSettings


# ---------------------------------------------------------------------------
# Tier definition
# ---------------------------------------------------------------------------

class TierDefinition(BaseModel):
    """Static defaults for one tier. Immutable."""
    model_config = ConfigDict(frozen=True)

    tier: Tier
    features: dict[Feature, bool] = Field(..., description="Default value for every feature flag")
    dependency_checks: dict[DependencyCheck, bool]
    probes: HealthProbes

    @property
    def description(self) -> str:
        return self.tier.description

    def enabled_features(self) -> list[Feature]:
        return [f for f in Feature if self.features.get(f, False)]


# ---------------------------------------------------------------------------
# Project configuration (user input)
# ---------------------------------------------------------------------------

class ProjectConfiguration(BaseModel):
    """What the user asked for.

    Feature and dependency-check maps are sparse: only explicitly overridden
    flags are present.  Semantic validation (non-empty names, known tier and
    flag names) is done by ``ConfigResolver`` so that every violation can be
    reported at once.
    """

    name: str = Field(default="", description="Project name (directory and binary name)")
    module: str = Field(
        default="",
        validation_alias=AliasChoices("module", "go_module"),
        description="Go module path, e.g. 'example.com/svc'",
    )
    tier: str = Field(default=Tier.BASIC.value)
    description: str = Field(default="")
    version: str = Field(default="1.0.0")
    features: dict[str, bool] = Field(default_factory=dict)
    dependency_checks: dict[str, bool] = Field(default_factory=dict)
    output_dir: Optional[Path] = Field(default=None, description="Defaults to the project name")

    @classmethod
    def from_file(cls, path: str | Path) -> "ProjectConfiguration":
        """Load a configuration from a YAML (or JSON) file.

        Raises:
            ConfigValidationError: If the file is unreadable or malformed.
        """
        file_path = Path(path)
        try:
            data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigValidationError([f"cannot read configuration file {file_path}: {exc}"]) from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigValidationError(
                [f"configuration file {file_path} must contain a mapping at the top level"]
            )
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ProjectConfiguration":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigValidationError(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
            ) from exc

    def to_yaml(self) -> str:
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.safe_dump(data, sort_keys=False)


# ---------------------------------------------------------------------------
# Resolved configuration
# ---------------------------------------------------------------------------

class ResolvedConfiguration(BaseModel):
    """A validated configuration with every flag populated. Immutable."""
    model_config = ConfigDict(frozen=True)

    name: str
    module: str
    tier: Tier
    description: str = ""
    version: str = "1.0.0"
    features: dict[Feature, bool]
    dependency_checks: dict[DependencyCheck, bool]
    probes: Optional[HealthProbes] = Field(
        default=None, description="Populated iff the kubernetes feature is enabled"
    )
    output_dir: Path
    feature_overrides: dict[str, bool] = Field(
        default_factory=dict, description="Normalised explicit feature overrides"
    )
    dependency_overrides: dict[str, bool] = Field(default_factory=dict)

    def enabled(self, feature: Feature | str) -> bool:
        return self.features.get(Feature.parse(feature), False)

    def enabled_features(self) -> list[Feature]:
        return [f for f in Feature if self.features.get(f, False)]

    def to_project_configuration(self, tier: Tier | None = None) -> ProjectConfiguration:
        """Rebuild the user-level configuration, optionally for another tier."""
        return ProjectConfiguration(
            name=self.name,
            module=self.module,
            tier=(tier or self.tier).value,
            description=self.description,
            version=self.version,
            features=dict(self.feature_overrides),
            dependency_checks=dict(self.dependency_overrides),
            output_dir=self.output_dir,
        )
