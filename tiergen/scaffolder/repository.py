"""Template artifact index.

The template set is described by ``catalog.yaml`` at the template root.  Each
entry names a Jinja2 source file, the (possibly templated) output path, the
tiers it belongs to, and the feature flags that gate it.  The repository
resolves the artifact set for a ``ResolvedConfiguration`` deterministically.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import DEFAULT_TEMPLATES_DIR
from ..errors import TemplateNotFoundError
from ..resolver.models import Feature, ResolvedConfiguration, Tier

CATALOG_NAME = "catalog.yaml"


# ---------------------------------------------------------------------------
# Artifact model
# ---------------------------------------------------------------------------


class TemplateArtifact(BaseModel):
    """One template-to-file mapping unit. Read-only reference data."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    source: str = Field(..., description="Template file relative to the template root")
    output_path: str = Field(
        ..., description="Output path relative to the project root; may contain {{ ... }}"
    )
    tiers: tuple[Tier, ...] = Field(..., min_length=1)
    shared: bool = Field(
        default=False, description="Included for every tier >= min(tiers) instead of exact tiers"
    )
    flags: tuple[Feature, ...] = Field(default=(), description="All must be enabled")
    requires: tuple[str, ...] = Field(
        default=(), description="Ids of shared artifacts this one depends on"
    )
    executable: bool = False
    description: str = ""

    @field_validator("flags", mode="before")
    @classmethod
    def _parse_flags(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return tuple(Feature.parse(v) for v in value)
        return value

    @property
    def min_tier(self) -> Tier:
        return min(self.tiers)

    def matches_tier(self, tier: Tier) -> bool:
        if self.shared:
            return tier >= self.min_tier
        return tier in self.tiers

    def applies_to(self, resolved: ResolvedConfiguration) -> bool:
        """True iff the tier matches and every gating flag is enabled."""
        return self.matches_tier(resolved.tier) and all(resolved.enabled(f) for f in self.flags)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TemplateRepository:
    """Indexes the template set and resolves artifacts for a configuration."""

    def __init__(self, templates_dir: str | Path | None = None) -> None:
        if templates_dir is None:
            templates_dir = DEFAULT_TEMPLATES_DIR
        self.templates_dir = Path(templates_dir)
        self._artifacts = self._load_catalog()

    # -- Catalog loading ---------------------------------------------------

    def _load_catalog(self) -> dict[str, TemplateArtifact]:
        catalog_path = self.templates_dir / CATALOG_NAME
        if not catalog_path.is_file():
            raise TemplateNotFoundError(CATALOG_NAME, f"Template catalog not found: {catalog_path}")

        data = yaml.safe_load(catalog_path.read_text(encoding="utf-8")) or {}
        entries = data.get("artifacts", []) if isinstance(data, dict) else []

        artifacts: dict[str, TemplateArtifact] = {}
        for raw in entries:
            try:
                artifact = TemplateArtifact.model_validate(raw)
            except (ValidationError, ValueError) as exc:
                ident = raw.get("id", "?") if isinstance(raw, dict) else "?"
                raise TemplateNotFoundError(ident, f"Invalid catalog entry '{ident}': {exc}") from exc
            if artifact.id in artifacts:
                raise TemplateNotFoundError(artifact.id, f"Duplicate catalog id: {artifact.id}")
            artifacts[artifact.id] = artifact
        return artifacts

    # -- Lookup ------------------------------------------------------------

    def get(self, artifact_id: str) -> TemplateArtifact:
        try:
            return self._artifacts[artifact_id]
        except KeyError:
            raise TemplateNotFoundError(artifact_id) from None

    def list_artifacts(self, tier: Tier | str | None = None) -> list[TemplateArtifact]:
        """Every artifact (or those whose tier condition matches *tier*), ordered."""
        artifacts = list(self._artifacts.values())
        if tier is not None:
            wanted = Tier.parse(tier)
            artifacts = [a for a in artifacts if a.matches_tier(wanted)]
        return sorted(artifacts, key=_sort_key)

    def source_path(self, artifact: TemplateArtifact) -> Path:
        return self.templates_dir / artifact.source

    def source_text(self, artifact: TemplateArtifact) -> str:
        path = self.source_path(artifact)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise TemplateNotFoundError(artifact.id, f"Template source missing: {path}") from None

    # -- Resolution --------------------------------------------------------

    def resolve_artifacts(self, resolved: ResolvedConfiguration) -> list[TemplateArtifact]:
        """Return the artifacts for *resolved*, ordered by output path then id.

        Raises:
            TemplateNotFoundError: If an included artifact requires one that is
                not part of the set, its source file is missing, or two
                artifacts claim the same output path.
        """
        selected = sorted(
            (a for a in self._artifacts.values() if a.applies_to(resolved)), key=_sort_key
        )
        selected_ids = {a.id for a in selected}

        seen_outputs: dict[str, str] = {}
        for artifact in selected:
            for required in artifact.requires:
                if required not in selected_ids:
                    raise TemplateNotFoundError(
                        required,
                        f"Artifact '{artifact.id}' requires '{required}', which is not "
                        f"available for tier '{resolved.tier.value}'",
                    )
            if not self.source_path(artifact).is_file():
                raise TemplateNotFoundError(
                    artifact.id, f"Template source missing: {self.source_path(artifact)}"
                )
            other = seen_outputs.get(artifact.output_path)
            if other is not None:
                raise TemplateNotFoundError(
                    artifact.id,
                    f"Artifacts '{other}' and '{artifact.id}' both write {artifact.output_path}",
                )
            seen_outputs[artifact.output_path] = artifact.id

        return selected


def _sort_key(artifact: TemplateArtifact) -> tuple[str, str]:
    return (artifact.output_path, artifact.id)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

# Groups ``update --components`` can select; everything else is "project".
COMPONENTS = ("go", "kubernetes", "docker", "typescript", "project")

_DOCKER_FILES = frozenset({"Dockerfile", "docker-compose.yml", ".dockerignore"})


def component_of(output_path: str) -> str:
    """Return the component an output path belongs to."""
    pure = PurePosixPath(output_path)
    if output_path.startswith("deployments/kubernetes/"):
        return "kubernetes"
    if output_path.startswith("client/typescript/"):
        return "typescript"
    if pure.name in _DOCKER_FILES:
        return "docker"
    if pure.suffix == ".go" or pure.name in ("go.mod", "go.sum"):
        return "go"
    return "project"
