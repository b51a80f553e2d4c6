"""Persisted generation manifest.

The manifest records, for every file the engine manages, the fingerprint of
the accepted content and of the last template render.  It is the only state
that survives between invocations and is what migrations diff against.

Loading is forward-compatible: unknown fields are ignored and fields added
after a manifest was written fall back to defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..config import DEFAULT_MANIFEST_NAME, TOOL_VERSION
from ..errors import ManifestError
from ..resolver.models import ProjectConfiguration, ResolvedConfiguration, Tier
from ..utils import atomic_write

MANIFEST_SCHEMA_VERSION = 1


class ManifestEntry(BaseModel):
    """What the engine knows about one managed file."""

    model_config = ConfigDict(extra="ignore")

    fingerprint: str = Field(..., description="Fingerprint of the accepted (live) content")
    template_fingerprint: Optional[str] = Field(
        default=None, description="Fingerprint of the last template render for this path"
    )
    tier: Optional[Tier] = Field(default=None, description="Tier the entry was last recorded at")
    generated_at: str = ""

    @model_validator(mode="after")
    def _default_template_fingerprint(self) -> "ManifestEntry":
        if self.template_fingerprint is None:
            self.template_fingerprint = self.fingerprint
        return self

    @property
    def user_owned(self) -> bool:
        """True when the accepted content is a user edit, not a template render."""
        return self.fingerprint != self.template_fingerprint


class ProjectRecord(BaseModel):
    """The user-level configuration the project was generated from."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    module: str = ""
    description: str = ""
    version: str = "1.0.0"
    features: dict[str, bool] = Field(default_factory=dict, description="Explicit overrides")
    dependency_checks: dict[str, bool] = Field(default_factory=dict)


class GenerationManifest(BaseModel):
    """Mapping of output path to fingerprint, plus generation metadata."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = MANIFEST_SCHEMA_VERSION
    tool_version: str = ""
    tier: Optional[Tier] = None
    generated_at: str = ""
    project: ProjectRecord = Field(default_factory=ProjectRecord)
    features: dict[str, bool] = Field(default_factory=dict, description="Resolved feature flags")
    files: dict[str, ManifestEntry] = Field(default_factory=dict)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        resolved: ResolvedConfiguration,
        files: dict[str, ManifestEntry],
        *,
        generated_at: str,
        tool_version: str = TOOL_VERSION,
    ) -> "GenerationManifest":
        return cls(
            tool_version=tool_version,
            tier=resolved.tier,
            generated_at=generated_at,
            project=ProjectRecord(
                name=resolved.name,
                module=resolved.module,
                description=resolved.description,
                version=resolved.version,
                features=dict(resolved.feature_overrides),
                dependency_checks=dict(resolved.dependency_overrides),
            ),
            features={f.value: v for f, v in resolved.features.items()},
            files=dict(sorted(files.items())),
        )

    def project_configuration(
        self, *, tier: Tier | None = None, output_dir: Path | None = None
    ) -> ProjectConfiguration:
        """Rebuild the ``ProjectConfiguration`` this manifest was generated from."""
        target = tier or self.tier or Tier.BASIC
        return ProjectConfiguration(
            name=self.project.name,
            module=self.project.module,
            tier=target.value,
            description=self.project.description,
            version=self.project.version,
            features=dict(self.project.features),
            dependency_checks=dict(self.project.dependency_checks),
            output_dir=output_dir,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def fingerprints(self) -> dict[str, str]:
        return {path: entry.fingerprint for path, entry in self.files.items()}

    def without_timestamps(self) -> dict[str, Any]:
        """Content of the manifest with every timestamp removed, for comparisons."""
        data = self.model_dump(mode="json", exclude={"generated_at"})
        for entry in data["files"].values():
            entry.pop("generated_at", None)
        return data

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"

    def save(self, path: Path) -> Path:
        """Atomically replace the manifest at *path*."""
        target = Path(path)
        atomic_write(target, self.to_json().encode("utf-8"))
        return target

    @classmethod
    def load(cls, path: Path) -> "GenerationManifest":
        """Load a manifest.

        Raises:
            ManifestError: If the file is missing or is not a valid manifest.
        """
        source = Path(path)
        if not source.is_file():
            raise ManifestError(source, "No generation manifest found")
        try:
            data = json.loads(source.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ManifestError(source, f"Unreadable generation manifest ({exc})") from exc
        if not isinstance(data, dict):
            raise ManifestError(source, "Generation manifest must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ManifestError(source, f"Invalid generation manifest ({exc.error_count()} error(s))") from exc

    @classmethod
    def exists_in(cls, project_root: Path, manifest_name: str = DEFAULT_MANIFEST_NAME) -> bool:
        return (Path(project_root) / manifest_name).is_file()
