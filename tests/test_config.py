"""Unit tests for tiergen engine settings (tiergen.config).

Tests cover:
- Settings defaults and field validation
- manifest_path
- save/load
- from_env
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tiergen.config import DEFAULT_MANIFEST_NAME, DEFAULT_PROPOSAL_SUFFIX, DEFAULT_TEMPLATES_DIR, Settings


class TestSettingsDefaults:
    @pytest.mark.unit
    def test_defaults(self):
        settings = Settings()
        assert settings.templates_dir == DEFAULT_TEMPLATES_DIR
        assert settings.manifest_name == DEFAULT_MANIFEST_NAME
        assert settings.max_workers == 8
        assert settings.validator_timeout == 120.0
        assert settings.write_proposals is True
        assert settings.proposal_suffix == DEFAULT_PROPOSAL_SUFFIX

    @pytest.mark.unit
    def test_bundled_catalog_exists(self):
        assert (DEFAULT_TEMPLATES_DIR / "catalog.yaml").is_file()

    @pytest.mark.unit
    def test_manifest_path(self, tmp_path: Path):
        assert Settings().manifest_path(tmp_path) == tmp_path / ".tiergen-manifest.json"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "field, value",
        [("max_workers", 0), ("validator_timeout", 0), ("manifest_name", ""), ("proposal_suffix", "")],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})


class TestSettingsPersistence:
    @pytest.mark.unit
    def test_save_and_load(self, tmp_path: Path):
        original = Settings(max_workers=3, write_proposals=False)
        path = original.save(tmp_path / "nested" / "settings.json")
        loaded = Settings.load(path)
        assert loaded.max_workers == 3
        assert loaded.write_proposals is False
        assert loaded.templates_dir == original.templates_dir


class TestSettingsFromEnv:
    @pytest.mark.unit
    def test_no_environment(self):
        with patch.dict(os.environ, {}, clear=True):
            assert Settings.from_env() == Settings()

    @pytest.mark.unit
    def test_overrides(self, tmp_path: Path):
        env = {
            "TIERGEN_TEMPLATES_DIR": str(tmp_path),
            "TIERGEN_MAX_WORKERS": "2",
            "TIERGEN_VALIDATOR_TIMEOUT": "30.5",
            "TIERGEN_WRITE_PROPOSALS": "off",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        assert settings.templates_dir == tmp_path
        assert settings.max_workers == 2
        assert settings.validator_timeout == 30.5
        assert settings.write_proposals is False

    @pytest.mark.unit
    def test_invalid_number(self):
        with patch.dict(os.environ, {"TIERGEN_MAX_WORKERS": "many"}, clear=True):
            with pytest.raises(ValueError):
                Settings.from_env()
