"""Tests for FileMaterializer: atomic writes, dry runs and manifest recording."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from tiergen.errors import AlreadyExistsError, FileWriteError
from tiergen.resolver import Tier
from tiergen.scaffolder import (
    FileMaterializer,
    GenerationManifest,
    ManifestEntry,
    MaterializeMode,
    RenderedFile,
    fingerprint,
)

pytestmark = pytest.mark.unit


def _file(path: str, text: str, *, executable: bool = False) -> RenderedFile:
    content = text.encode("utf-8")
    return RenderedFile(
        artifact_id=path, path=path, content=content, fingerprint=fingerprint(content), executable=executable
    )


@pytest.fixture
def files() -> list[RenderedFile]:
    return [
        _file("README.md", "# orders\n"),
        _file("internal/app/app.go", "package app\n"),
        _file("scripts/build.sh", "#!/bin/sh\n", executable=True),
    ]


@pytest.fixture
def materializer() -> FileMaterializer:
    return FileMaterializer(max_workers=2)


class TestCreate:
    @pytest.mark.asyncio
    async def test_writes_files_and_manifest(self, materializer, files, resolve, tmp_path, generated_at):
        root = tmp_path / "orders"
        result = await materializer.materialize(
            files, root, MaterializeMode.CREATE, resolved=resolve("basic"), generated_at=generated_at
        )
        assert sorted(result.written) == ["README.md", "internal/app/app.go", "scripts/build.sh"]
        assert (root / "internal/app/app.go").read_text(encoding="utf-8") == "package app\n"

        manifest = GenerationManifest.load(result.manifest_path)
        assert manifest.tier is Tier.BASIC
        for rendered in files:
            entry = manifest.files[rendered.path]
            assert entry.fingerprint == fingerprint((root / rendered.path).read_bytes())
            assert entry.template_fingerprint == entry.fingerprint

    @pytest.mark.asyncio
    async def test_executable_bit(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        await materializer.materialize(files, root, MaterializeMode.CREATE, resolved=resolve("basic"))
        assert os.stat(root / "scripts/build.sh").st_mode & stat.S_IXUSR
        assert not os.stat(root / "README.md").st_mode & stat.S_IXUSR

    @pytest.mark.asyncio
    async def test_refuses_existing_manifest(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        await materializer.materialize(files, root, MaterializeMode.CREATE, resolved=resolve("basic"))
        (root / "README.md").write_text("edited\n", encoding="utf-8")
        with pytest.raises(AlreadyExistsError):
            await materializer.materialize(files, root, MaterializeMode.CREATE, resolved=resolve("basic"))
        assert (root / "README.md").read_text(encoding="utf-8") == "edited\n"

    @pytest.mark.asyncio
    async def test_no_temporary_files_left(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        await materializer.materialize(files, root, MaterializeMode.CREATE, resolved=resolve("basic"))
        assert not [p for p in root.rglob("*.tmp")]


class TestDryRun:
    @pytest.mark.asyncio
    async def test_writes_nothing(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        result = await materializer.materialize(files, root, MaterializeMode.DRY_RUN, resolved=resolve("basic"))
        assert result.dry_run
        assert not root.exists()
        assert set(result.manifest.files) == {f.path for f in files}
        assert result.diffs["README.md"].startswith("--- /dev/null")

    @pytest.mark.asyncio
    async def test_identical_files_have_no_diff(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        (root).mkdir()
        (root / "README.md").write_text("# orders\n", encoding="utf-8")
        result = await materializer.materialize(files, root, MaterializeMode.DRY_RUN, resolved=resolve("basic"))
        assert "README.md" not in result.diffs
        assert "internal/app/app.go" in result.diffs


class TestApply:
    @pytest.mark.asyncio
    async def test_only_writable_paths_written(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        result = await materializer.materialize(
            files,
            root,
            MaterializeMode.APPLY,
            resolved=resolve("basic"),
            writable=["README.md"],
        )
        assert result.written == ["README.md"]
        assert sorted(result.skipped) == ["internal/app/app.go", "scripts/build.sh"]
        assert not (root / "scripts/build.sh").exists()
        assert set(result.manifest.files) == {"README.md"}

    @pytest.mark.asyncio
    async def test_carried_entries_and_sidecars(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        carried = {"notes.md": ManifestEntry(fingerprint="sha256:user", template_fingerprint="sha256:tpl")}
        sidecar = _file("README.md.tiergen-proposed", "# proposal\n")
        result = await materializer.materialize(
            files,
            root,
            MaterializeMode.APPLY,
            resolved=resolve("basic"),
            writable=[],
            carried=carried,
            sidecars=[sidecar],
        )
        assert result.sidecars == ["README.md.tiergen-proposed"]
        assert (root / "README.md.tiergen-proposed").is_file()
        assert set(result.manifest.files) == {"notes.md"}
        assert result.manifest.files["notes.md"].user_owned

    @pytest.mark.asyncio
    async def test_removals_prune_empty_directories(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        await materializer.materialize(files, root, MaterializeMode.CREATE, resolved=resolve("basic"))
        result = await materializer.materialize(
            files[:1],
            root,
            MaterializeMode.APPLY,
            resolved=resolve("basic"),
            removals=["internal/app/app.go"],
        )
        assert result.removed == ["internal/app/app.go"]
        assert not (root / "internal").exists()
        assert "internal/app/app.go" not in result.manifest.files


class TestFailures:
    @pytest.mark.asyncio
    async def test_write_failure_leaves_manifest_untouched(self, materializer, files, resolve, tmp_path):
        root = tmp_path / "orders"
        first = await materializer.materialize(files, root, MaterializeMode.CREATE, resolved=resolve("basic"))
        before = first.manifest_path.read_bytes()

        changed = [_file("README.md", "# changed\n")]
        with patch("tiergen.scaffolder.materializer.atomic_write", side_effect=PermissionError("denied")):
            with pytest.raises(FileWriteError) as exc_info:
                await materializer.materialize(
                    changed, root, MaterializeMode.APPLY, resolved=resolve("intermediate")
                )
        assert exc_info.value.path == root / "README.md"
        assert first.manifest_path.read_bytes() == before
        assert (root / "README.md").read_text(encoding="utf-8") == "# orders\n"
