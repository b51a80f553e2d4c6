"""Tests for the Jinja2 render engine and its filters."""

from __future__ import annotations

from pathlib import Path

import pytest

from tiergen.errors import RenderError, TemplateNotFoundError
from tiergen.scaffolder import RenderContext, RenderEngine, TemplateArtifact, TemplateRepository, fingerprint
from tiergen.scaffolder.templates import _pascal_case_filter, _slugify_filter

pytestmark = pytest.mark.unit

FIXED_TIMESTAMP = "2024-01-01T00:00:00+00:00"


def _artifact(source: str, output_path: str, **kwargs) -> TemplateArtifact:
    return TemplateArtifact(id=kwargs.pop("id", "t"), source=source, output_path=output_path, tiers=["basic"], **kwargs)


class TestFilters:
    def test_slugify(self):
        assert _slugify_filter("My Cool_Service!") == "my-cool-service"

    def test_pascal_case(self):
        assert _pascal_case_filter("order-service") == "OrderService"
        assert _pascal_case_filter("filesystem") == "Filesystem"


class TestRenderContext:
    def test_from_resolved(self, resolve):
        context = RenderContext.from_resolved(resolve("advanced"), generated_at=FIXED_TIMESTAMP)
        assert context.tier == "advanced"
        assert context.tier_rank == 2
        assert context.features["cloudevents"] is True
        assert context.probes["liveness"]["path"] == "/health/live"


class TestRender:
    def test_output_path_is_templated(self, mini_templates, resolve):
        engine = RenderEngine(mini_templates, generated_at=FIXED_TIMESTAMP)
        repo = TemplateRepository(mini_templates)
        rendered = engine.render(repo.get("main"), resolve("basic"))
        assert rendered.path == "cmd/orders/main.go"
        assert "// example.com/orders" in rendered.text
        assert rendered.fingerprint == fingerprint(rendered.content)

    def test_executable_flag_carried(self, mini_templates, resolve):
        engine = RenderEngine(mini_templates, generated_at=FIXED_TIMESTAMP)
        rendered = engine.render(TemplateRepository(mini_templates).get("run-script"), resolve("basic"))
        assert rendered.executable is True

    def test_undefined_variable_fails(self, tmp_path: Path, resolve):
        (tmp_path / "bad.j2").write_text("{{ not_a_variable }}", encoding="utf-8")
        engine = RenderEngine(tmp_path, generated_at=FIXED_TIMESTAMP)
        with pytest.raises(RenderError, match="not_a_variable"):
            engine.render(_artifact("bad.j2", "bad.txt"), resolve("basic"))

    def test_syntax_error_fails(self, tmp_path: Path, resolve):
        (tmp_path / "bad.j2").write_text("{% if %}", encoding="utf-8")
        engine = RenderEngine(tmp_path, generated_at=FIXED_TIMESTAMP)
        with pytest.raises(RenderError):
            engine.render(_artifact("bad.j2", "bad.txt"), resolve("basic"))

    def test_missing_source(self, tmp_path: Path, resolve):
        engine = RenderEngine(tmp_path, generated_at=FIXED_TIMESTAMP)
        with pytest.raises(TemplateNotFoundError):
            engine.render(_artifact("absent.j2", "out.txt"), resolve("basic"))

    @pytest.mark.parametrize("output_path", ["../escape.txt", "/etc/passwd", "a/../../b"])
    def test_output_path_must_stay_inside_root(self, tmp_path: Path, resolve, output_path):
        (tmp_path / "ok.j2").write_text("ok", encoding="utf-8")
        engine = RenderEngine(tmp_path, generated_at=FIXED_TIMESTAMP)
        with pytest.raises(RenderError, match="inside the project root"):
            engine.render(_artifact("ok.j2", output_path), resolve("basic"))


class TestRenderAll:
    @pytest.mark.asyncio
    async def test_preserves_input_order(self, mini_templates, resolve):
        resolved = resolve("advanced")
        artifacts = TemplateRepository(mini_templates).resolve_artifacts(resolved)
        files = await RenderEngine(mini_templates, generated_at=FIXED_TIMESTAMP).render_all(
            artifacts, resolved, max_workers=2
        )
        assert [f.artifact_id for f in files] == [a.id for a in artifacts]

    @pytest.mark.asyncio
    async def test_first_failure_propagates(self, mini_templates, resolve):
        (mini_templates / "shared" / "extras.txt.j2").write_text("{{ missing }}", encoding="utf-8")
        resolved = resolve("advanced")
        artifacts = TemplateRepository(mini_templates).resolve_artifacts(resolved)
        with pytest.raises(RenderError):
            await RenderEngine(mini_templates, generated_at=FIXED_TIMESTAMP).render_all(artifacts, resolved)

    @pytest.mark.asyncio
    async def test_bundled_templates_are_deterministic(self, resolve):
        resolved = resolve("enterprise")
        artifacts = TemplateRepository().resolve_artifacts(resolved)
        first = await RenderEngine(generated_at="2024-01-01T00:00:00+00:00").render_all(artifacts, resolved)
        second = await RenderEngine(generated_at="2025-06-30T12:00:00+00:00").render_all(artifacts, resolved)
        assert [(f.path, f.fingerprint) for f in first] == [(f.path, f.fingerprint) for f in second]

    @pytest.mark.asyncio
    async def test_bundled_templates_render_for_every_tier(self, resolve):
        for tier in ("basic", "intermediate", "advanced", "enterprise"):
            resolved = resolve(tier)
            artifacts = TemplateRepository().resolve_artifacts(resolved)
            files = await RenderEngine(generated_at=FIXED_TIMESTAMP).render_all(artifacts, resolved)
            by_path = {f.path: f for f in files}
            assert "module example.com/orders" in by_path["go.mod"].text
            assert "cmd/orders/main.go" in by_path
            assert all(f.content for f in files)
