"""tiergen scaffolder -- template resolution, rendering and materialization.

This package turns a ``ResolvedConfiguration`` into files on disk: the
``TemplateRepository`` picks the artifacts for the tier and feature set, the
``RenderEngine`` renders them with Jinja2, and the ``FileMaterializer``
writes them atomically and records the ``GenerationManifest``.

Quick usage::

    from tiergen.scaffolder import FileMaterializer, MaterializeMode, RenderEngine, TemplateRepository

    repository = TemplateRepository()
    artifacts = repository.resolve_artifacts(resolved)
    files = await RenderEngine(repository.templates_dir).render_all(artifacts, resolved)
    result = await FileMaterializer().materialize(
        files, resolved.output_dir, MaterializeMode.CREATE, resolved=resolved
    )
"""

from .manifest import GenerationManifest, ManifestEntry, ProjectRecord
from .materializer import FileMaterializer, MaterializationResult, MaterializeMode
from .repository import COMPONENTS, TemplateArtifact, TemplateRepository, component_of
from .templates import RenderContext, RenderedFile, RenderEngine, fingerprint

__all__ = [
    "COMPONENTS",
    "FileMaterializer",
    "GenerationManifest",
    "ManifestEntry",
    "MaterializationResult",
    "MaterializeMode",
    "ProjectRecord",
    "RenderContext",
    "RenderEngine",
    "RenderedFile",
    "TemplateArtifact",
    "TemplateRepository",
    "component_of",
    "fingerprint",
]
