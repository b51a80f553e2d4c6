"""Shared pytest fixtures for the tiergen test suite.

Provides reusable fixtures for:
- Engine settings and a quiet validator that needs no external toolchain
- Project configurations and resolved configurations per tier
- A miniature template set for repository and renderer tests
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable

import pytest

from tiergen.config import Settings
from tiergen.engine import ScaffoldEngine
from tiergen.resolver import ConfigResolver, ProjectConfiguration, ResolvedConfiguration
from tiergen.validator import JsonSyntaxCheck, ProjectValidator, YamlSyntaxCheck

# Fixed timestamp so repeated runs produce byte-identical manifests.
FIXED_TIMESTAMP = "2024-01-01T00:00:00+00:00"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@pytest.fixture
def generated_at() -> str:
    return FIXED_TIMESTAMP


@pytest.fixture
def settings() -> Settings:
    return Settings(max_workers=4)


@pytest.fixture
def quiet_validator() -> ProjectValidator:
    """In-process syntax checks only, no console output."""
    return ProjectValidator(checks=[YamlSyntaxCheck(), JsonSyntaxCheck()], quiet=True)


@pytest.fixture
def engine(settings: Settings, quiet_validator: ProjectValidator) -> ScaffoldEngine:
    return ScaffoldEngine(settings, validator=quiet_validator)


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------

@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., ProjectConfiguration]:
    """Factory for project configurations rooted in ``tmp_path``."""

    def _make(tier: str = "basic", **overrides) -> ProjectConfiguration:
        data = {
            "name": "orders",
            "module": "example.com/orders",
            "tier": tier,
            "description": "Order service",
            "output_dir": tmp_path / "orders",
        }
        data.update(overrides)
        return ProjectConfiguration(**data)

    return _make


@pytest.fixture
def resolve(make_config) -> Callable[..., ResolvedConfiguration]:
    """Factory returning resolved configurations."""
    resolver = ConfigResolver()

    def _resolve(tier: str = "basic", **overrides) -> ResolvedConfiguration:
        return resolver.resolve(make_config(tier, **overrides))

    return _resolve


# ---------------------------------------------------------------------------
# Miniature template set
# ---------------------------------------------------------------------------

MINI_CATALOG = """\
artifacts:
  - id: readme
    source: shared/README.md.j2
    output_path: README.md
    tiers: [basic]
    shared: true
  - id: main
    source: shared/main.go.j2
    output_path: "cmd/{{ name }}/main.go"
    tiers: [basic]
    shared: true
  - id: run-script
    source: shared/run.sh.j2
    output_path: scripts/run.sh
    tiers: [basic]
    shared: true
    executable: true
  - id: extras
    source: shared/extras.txt.j2
    output_path: docs/extras.txt
    tiers: [intermediate]
    shared: true
  - id: tracing
    source: shared/tracing.go.j2
    output_path: internal/tracing.go
    tiers: [basic]
    shared: true
    flags: [opentelemetry]
  - id: audit
    source: enterprise/audit.go.j2
    output_path: internal/audit.go
    tiers: [enterprise]
    flags: [compliance]
    requires: [tracing]
"""

MINI_SOURCES = {
    "shared/README.md.j2": "# {{ name }}\n\nTier: {{ tier }}\n",
    "shared/main.go.j2": "package main\n\n// {{ module }}\nfunc main() {}\n",
    "shared/run.sh.j2": "#!/bin/sh\necho {{ name | slugify }}\n",
    "shared/extras.txt.j2": "extras for {{ name | pascal_case }}\n",
    "shared/tracing.go.j2": "package tracing\n",
    "enterprise/audit.go.j2": "package audit\n",
}


@pytest.fixture
def mini_templates(tmp_path: Path) -> Path:
    """A small template set exercising shared, flagged, exact-tier and executable artifacts."""
    root = tmp_path / "templates"
    root.mkdir()
    (root / "catalog.yaml").write_text(textwrap.dedent(MINI_CATALOG), encoding="utf-8")
    for rel, text in MINI_SOURCES.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root
