"""Tests for the persisted generation manifest."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tiergen.errors import ManifestError
from tiergen.resolver import Tier
from tiergen.scaffolder import GenerationManifest, ManifestEntry

pytestmark = pytest.mark.unit


@pytest.fixture
def manifest(resolve, generated_at) -> GenerationManifest:
    resolved = resolve("intermediate", features={"metrics": True})
    return GenerationManifest.build(
        resolved,
        {
            "go.mod": ManifestEntry(fingerprint="sha256:aa", tier=Tier.INTERMEDIATE, generated_at=generated_at),
            "README.md": ManifestEntry(
                fingerprint="sha256:user",
                template_fingerprint="sha256:tpl",
                tier=Tier.INTERMEDIATE,
                generated_at=generated_at,
            ),
        },
        generated_at=generated_at,
    )


class TestManifestEntry:
    def test_template_fingerprint_defaults_to_fingerprint(self):
        entry = ManifestEntry(fingerprint="sha256:aa")
        assert entry.template_fingerprint == "sha256:aa"
        assert not entry.user_owned

    def test_user_owned(self):
        entry = ManifestEntry(fingerprint="sha256:a", template_fingerprint="sha256:b")
        assert entry.user_owned


class TestBuild:
    def test_records_configuration(self, manifest):
        assert manifest.tier is Tier.INTERMEDIATE
        assert manifest.project.name == "orders"
        assert manifest.project.features == {"metrics": True}
        assert manifest.features["metrics"] is True
        assert manifest.features["security"] is False

    def test_files_sorted(self, manifest):
        assert list(manifest.files) == ["README.md", "go.mod"]

    def test_project_configuration_round_trip(self, manifest, tmp_path: Path):
        config = manifest.project_configuration(tier=Tier.ADVANCED, output_dir=tmp_path)
        assert config.tier == "advanced"
        assert config.module == "example.com/orders"
        assert config.features == {"metrics": True}
        assert config.output_dir == tmp_path

    def test_without_timestamps(self, manifest):
        data = manifest.without_timestamps()
        assert "generated_at" not in data
        assert all("generated_at" not in entry for entry in data["files"].values())


class TestPersistence:
    def test_save_and_load(self, manifest, tmp_path: Path):
        path = manifest.save(tmp_path / ".tiergen-manifest.json")
        loaded = GenerationManifest.load(path)
        assert loaded.model_dump() == manifest.model_dump()
        assert GenerationManifest.exists_in(tmp_path)

    def test_serialisation_is_stable(self, manifest):
        assert manifest.to_json() == manifest.to_json()
        assert json.loads(manifest.to_json())["files"]["go.mod"]["fingerprint"] == "sha256:aa"

    def test_unknown_fields_ignored(self, tmp_path: Path):
        path = tmp_path / "m.json"
        path.write_text(
            json.dumps(
                {
                    "schema_version": 1,
                    "tier": "basic",
                    "future_field": {"x": 1},
                    "files": {"go.mod": {"fingerprint": "sha256:aa", "signature": "zz"}},
                }
            ),
            encoding="utf-8",
        )
        loaded = GenerationManifest.load(path)
        assert loaded.files["go.mod"].template_fingerprint == "sha256:aa"
        assert loaded.tool_version == ""

    def test_missing(self, tmp_path: Path):
        with pytest.raises(ManifestError, match="No generation manifest"):
            GenerationManifest.load(tmp_path / "absent.json")

    def test_corrupt(self, tmp_path: Path):
        path = tmp_path / "m.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestError, match="Unreadable"):
            GenerationManifest.load(path)

    def test_not_an_object(self, tmp_path: Path):
        path = tmp_path / "m.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ManifestError, match="JSON object"):
            GenerationManifest.load(path)

    def test_invalid_tier(self, tmp_path: Path):
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"tier": "platinum"}), encoding="utf-8")
        with pytest.raises(ManifestError, match="Invalid"):
            GenerationManifest.load(path)
