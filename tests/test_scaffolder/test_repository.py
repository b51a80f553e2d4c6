"""Tests for the template catalog and artifact resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from tiergen.errors import TemplateNotFoundError
from tiergen.resolver import Tier
from tiergen.scaffolder import COMPONENTS, TemplateRepository, component_of

pytestmark = pytest.mark.unit


def _ids(artifacts) -> list[str]:
    return [a.id for a in artifacts]


class TestMiniCatalog:
    def test_shared_artifacts_apply_from_min_tier(self, mini_templates, resolve):
        repo = TemplateRepository(mini_templates)
        assert "extras" not in _ids(repo.resolve_artifacts(resolve("basic")))
        assert "extras" in _ids(repo.resolve_artifacts(resolve("advanced")))

    def test_flag_gated_artifact(self, mini_templates, resolve):
        repo = TemplateRepository(mini_templates)
        assert "tracing" not in _ids(repo.resolve_artifacts(resolve("basic")))
        assert "tracing" in _ids(
            repo.resolve_artifacts(resolve("basic", features={"opentelemetry": True}))
        )

    def test_exact_tier_artifact(self, mini_templates, resolve):
        repo = TemplateRepository(mini_templates)
        assert "audit" in _ids(repo.resolve_artifacts(resolve("enterprise")))
        assert "audit" not in _ids(
            repo.resolve_artifacts(resolve("advanced", features={"compliance": True}))
        )

    def test_ordered_by_output_path(self, mini_templates, resolve):
        artifacts = TemplateRepository(mini_templates).resolve_artifacts(resolve("enterprise"))
        paths = [a.output_path for a in artifacts]
        assert paths == sorted(paths)

    def test_missing_requirement(self, mini_templates, resolve):
        resolved = resolve(
            "enterprise",
            features={"opentelemetry": False, "metrics": False, "service_monitor": False},
        )
        with pytest.raises(TemplateNotFoundError, match="requires 'tracing'"):
            TemplateRepository(mini_templates).resolve_artifacts(resolved)

    def test_missing_source_file(self, mini_templates, resolve):
        (mini_templates / "shared" / "README.md.j2").unlink()
        with pytest.raises(TemplateNotFoundError, match="source missing"):
            TemplateRepository(mini_templates).resolve_artifacts(resolve("basic"))

    def test_list_by_tier(self, mini_templates):
        repo = TemplateRepository(mini_templates)
        assert "audit" not in _ids(repo.list_artifacts("advanced"))
        assert len(repo.list_artifacts()) == 6

    def test_get_unknown(self, mini_templates):
        with pytest.raises(TemplateNotFoundError):
            TemplateRepository(mini_templates).get("nope")


class TestCatalogErrors:
    def test_missing_catalog(self, tmp_path: Path):
        with pytest.raises(TemplateNotFoundError, match="catalog not found"):
            TemplateRepository(tmp_path)

    def test_duplicate_id(self, tmp_path: Path):
        (tmp_path / "catalog.yaml").write_text(
            "artifacts:\n"
            "  - {id: a, source: a.j2, output_path: a, tiers: [basic]}\n"
            "  - {id: a, source: b.j2, output_path: b, tiers: [basic]}\n",
            encoding="utf-8",
        )
        with pytest.raises(TemplateNotFoundError, match="Duplicate"):
            TemplateRepository(tmp_path)

    def test_unknown_flag_in_catalog(self, tmp_path: Path):
        (tmp_path / "catalog.yaml").write_text(
            "artifacts:\n"
            "  - {id: a, source: a.j2, output_path: a, tiers: [basic], flags: [teleport]}\n",
            encoding="utf-8",
        )
        with pytest.raises(TemplateNotFoundError, match="Invalid catalog entry 'a'"):
            TemplateRepository(tmp_path)

    def test_conflicting_output_paths(self, tmp_path: Path, resolve):
        (tmp_path / "a.j2").write_text("a", encoding="utf-8")
        (tmp_path / "b.j2").write_text("b", encoding="utf-8")
        (tmp_path / "catalog.yaml").write_text(
            "artifacts:\n"
            "  - {id: a, source: a.j2, output_path: same.txt, tiers: [basic], shared: true}\n"
            "  - {id: b, source: b.j2, output_path: same.txt, tiers: [basic], shared: true}\n",
            encoding="utf-8",
        )
        with pytest.raises(TemplateNotFoundError, match="both write same.txt"):
            TemplateRepository(tmp_path).resolve_artifacts(resolve("basic"))


class TestBundledCatalog:
    """The installed template set must resolve for every tier."""

    @pytest.mark.parametrize("tier", [t.value for t in Tier])
    def test_resolves_for_every_tier(self, tier, resolve):
        artifacts = TemplateRepository().resolve_artifacts(resolve(tier))
        outputs = [a.output_path for a in artifacts]
        assert len(outputs) == len(set(outputs))
        assert "go.mod" in outputs
        assert "internal/server/server.go" in outputs

    def test_enterprise_server_variant(self, resolve):
        repo = TemplateRepository()
        basic_ids = _ids(repo.resolve_artifacts(resolve("basic")))
        enterprise_ids = _ids(repo.resolve_artifacts(resolve("enterprise")))
        assert "go-server" in basic_ids and "go-server-enterprise" not in basic_ids
        assert "go-server-enterprise" in enterprise_ids and "go-server" not in enterprise_ids

    def test_enterprise_security_artifacts(self, resolve):
        outputs = [a.output_path for a in TemplateRepository().resolve_artifacts(resolve("enterprise"))]
        for expected in (
            "internal/security/mtls.go",
            "internal/security/rbac.go",
            "internal/compliance/audit.go",
            "configs/production.yaml",
        ):
            assert expected in outputs

    def test_feature_disabled_everywhere(self, resolve):
        resolved = resolve("enterprise", features={"typescript": False})
        outputs = [a.output_path for a in TemplateRepository().resolve_artifacts(resolved)]
        assert not any(p.startswith("client/typescript/") for p in outputs)


class TestComponentOf:
    @pytest.mark.parametrize(
        "path, component",
        [
            ("cmd/orders/main.go", "go"),
            ("internal/security/rbac.go", "go"),
            ("go.mod", "go"),
            ("deployments/kubernetes/deployment.yaml", "kubernetes"),
            ("client/typescript/package.json", "typescript"),
            ("Dockerfile", "docker"),
            ("docker-compose.yml", "docker"),
            (".dockerignore", "docker"),
            ("README.md", "project"),
            ("configs/production.yaml", "project"),
            ("scripts/build.sh", "project"),
        ],
    )
    def test_component(self, path, component):
        assert component_of(path) == component

    def test_every_bundled_artifact_has_a_known_component(self):
        for artifact in TemplateRepository().list_artifacts():
            assert component_of(artifact.output_path) in COMPONENTS
