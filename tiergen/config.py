"""tiergen tool settings.

Centralised, typed settings for the engine itself (not for the projects it
generates). All settings use Pydantic v2 models so they can be validated at
construction time and serialised to/from JSON or environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

TOOL_VERSION = "1.0.0"

DEFAULT_TEMPLATES_DIR = Path(__file__).parent / "scaffolder" / "templates"
DEFAULT_MANIFEST_NAME = ".tiergen-manifest.json"
DEFAULT_PROPOSAL_SUFFIX = ".tiergen-proposed"


class Settings(BaseModel):
    """Engine settings shared by the CLI and the ``ScaffoldEngine``."""

    templates_dir: Path = Field(
        default=DEFAULT_TEMPLATES_DIR,
        description="Root of the template set (must contain catalog.yaml)",
    )
    manifest_name: str = Field(default=DEFAULT_MANIFEST_NAME, min_length=1)
    max_workers: int = Field(
        default=8, ge=1, description="Bounded worker pool size for render/write fan-out"
    )
    validator_timeout: float = Field(
        default=120.0, gt=0, description="Per-check timeout for external validators in seconds"
    )
    write_proposals: bool = Field(
        default=True,
        description="Write the template's proposed content next to conflicting files",
    )
    proposal_suffix: str = Field(default=DEFAULT_PROPOSAL_SUFFIX, min_length=1)

    def manifest_path(self, project_root: Path) -> Path:
        """Path of the manifest inside *project_root*."""
        return Path(project_root) / self.manifest_name

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the settings to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Settings":
        """Load previously saved settings from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            TIERGEN_TEMPLATES_DIR, TIERGEN_MAX_WORKERS,
            TIERGEN_VALIDATOR_TIMEOUT, TIERGEN_WRITE_PROPOSALS.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("TIERGEN_TEMPLATES_DIR"):
            kwargs["templates_dir"] = Path(os.environ["TIERGEN_TEMPLATES_DIR"])
        if os.environ.get("TIERGEN_MAX_WORKERS"):
            kwargs["max_workers"] = int(os.environ["TIERGEN_MAX_WORKERS"])
        if os.environ.get("TIERGEN_VALIDATOR_TIMEOUT"):
            kwargs["validator_timeout"] = float(os.environ["TIERGEN_VALIDATOR_TIMEOUT"])
        if os.environ.get("TIERGEN_WRITE_PROPOSALS"):
            kwargs["write_proposals"] = os.environ["TIERGEN_WRITE_PROPOSALS"].strip().lower() in (
                "1",
                "true",
                "yes",
                "on",
            )
        return cls(**kwargs)
