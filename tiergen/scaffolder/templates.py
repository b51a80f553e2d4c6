"""Jinja2 rendering of template artifacts.

Provides the ``RenderEngine`` which loads Jinja2 templates from the template
root and renders them against a typed ``RenderContext`` built from the
resolved configuration.  Rendering is strict: a template referencing any
value the context does not provide fails with ``RenderError`` instead of
emitting partially substituted output.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Sequence

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)
from pydantic import BaseModel, Field

from ..config import DEFAULT_TEMPLATES_DIR, TOOL_VERSION
from ..errors import RenderError, TemplateNotFoundError
from ..resolver.models import ResolvedConfiguration
from .repository import TemplateArtifact


# ---------------------------------------------------------------------------
# Rendered output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenderedFile:
    """Concrete output of one artifact for one configuration."""

    artifact_id: str
    path: str
    content: bytes = field(repr=False)
    fingerprint: str
    executable: bool = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def fingerprint(data: bytes) -> str:
    """Stable content fingerprint: ``sha256:<hex digest>``."""
    return "sha256:" + hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# Render context
# ---------------------------------------------------------------------------


class RenderContext(BaseModel):
    """Every value a template may substitute."""

    name: str
    module: str
    description: str = ""
    version: str = "1.0.0"
    tier: str
    tier_rank: int
    features: dict[str, bool]
    dependency_checks: dict[str, bool]
    probes: Optional[dict[str, Any]] = None
    tool_version: str = Field(default=TOOL_VERSION, description="Engine-provided")
    generated_at: str = Field(..., description="Engine-provided ISO-8601 timestamp")

    @classmethod
    def from_resolved(
        cls,
        resolved: ResolvedConfiguration,
        *,
        generated_at: str,
        tool_version: str = TOOL_VERSION,
    ) -> "RenderContext":
        return cls(
            name=resolved.name,
            module=resolved.module,
            description=resolved.description,
            version=resolved.version,
            tier=resolved.tier.value,
            tier_rank=resolved.tier.rank,
            features={f.value: v for f, v in resolved.features.items()},
            dependency_checks={d.value: v for d, v in resolved.dependency_checks.items()},
            probes=resolved.probes.model_dump() if resolved.probes else None,
            tool_version=tool_version,
            generated_at=generated_at,
        )

    def as_template_vars(self) -> dict[str, Any]:
        return self.model_dump()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


# ---------------------------------------------------------------------------
# RenderEngine
# ---------------------------------------------------------------------------


class RenderEngine:
    """Renders template artifacts into ``RenderedFile`` objects.

    The engine discovers ``.j2`` sources under a configurable template root.
    Both the artifact's output path and its content are rendered with the
    same context, so ``cmd/{{ name }}/main.go`` resolves like any template.
    """

    def __init__(
        self,
        template_dir: str | Path | None = None,
        *,
        generated_at: str | None = None,
        tool_version: str = TOOL_VERSION,
    ) -> None:
        if template_dir is None:
            template_dir = DEFAULT_TEMPLATES_DIR
        self.template_dir = Path(template_dir)
        self.generated_at = generated_at or utc_timestamp()
        self.tool_version = tool_version
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter

    def context_for(self, resolved: ResolvedConfiguration) -> RenderContext:
        return RenderContext.from_resolved(
            resolved, generated_at=self.generated_at, tool_version=self.tool_version
        )

    # -- Single artifact rendering -----------------------------------------

    def render(self, artifact: TemplateArtifact, resolved: ResolvedConfiguration) -> RenderedFile:
        """Render *artifact* for *resolved*.

        Raises:
            RenderError: On undefined variables, template syntax errors, or an
                output path that escapes the project root.
            TemplateNotFoundError: If the source file does not exist.
        """
        return self._render(artifact, self.context_for(resolved).as_template_vars())

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    def _render(self, artifact: TemplateArtifact, variables: dict[str, Any]) -> RenderedFile:
        try:
            raw_path = self.render_string(artifact.output_path, variables)
            template = self.env.get_template(artifact.source)
            text = template.render(**variables)
        except TemplateNotFound as exc:
            raise TemplateNotFoundError(artifact.id, f"Template source missing: {exc.name}") from exc
        except TemplateError as exc:
            raise RenderError(artifact.id, exc.message or str(exc)) from exc

        path = _normalise_output_path(artifact.id, raw_path)
        content = text.encode("utf-8")
        return RenderedFile(
            artifact_id=artifact.id,
            path=path,
            content=content,
            fingerprint=fingerprint(content),
            executable=artifact.executable,
        )

    # -- Batch rendering (async) -------------------------------------------

    async def render_all(
        self,
        artifacts: Sequence[TemplateArtifact],
        resolved: ResolvedConfiguration,
        *,
        max_workers: int = 8,
    ) -> list[RenderedFile]:
        """Render every artifact on a bounded worker pool.

        Results come back in input order.  The first failure cancels the
        remaining work and is re-raised, so nothing is ever written from a
        partially rendered set.
        """
        variables = self.context_for(resolved).as_template_vars()
        semaphore = asyncio.Semaphore(max(1, max_workers))

        async def _one(artifact: TemplateArtifact) -> RenderedFile:
            async with semaphore:
                return await asyncio.to_thread(self._render, artifact, variables)

        tasks = [asyncio.create_task(_one(a)) for a in artifacts]
        try:
            rendered = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        seen: dict[str, str] = {}
        for item in rendered:
            if item.path in seen:
                raise RenderError(
                    item.artifact_id, f"output path {item.path} also produced by {seen[item.path]}"
                )
            seen[item.path] = item.artifact_id
        return list(rendered)


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word.capitalize() for word in parts if word)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _normalise_output_path(artifact_id: str, raw: str) -> str:
    """Validate a rendered output path and return it in POSIX form."""
    candidate = raw.strip().replace("\\", "/")
    pure = PurePosixPath(candidate)
    if not candidate or pure.is_absolute() or ".." in pure.parts:
        raise RenderError(artifact_id, f"output path '{raw}' must stay inside the project root")
    return pure.as_posix()
