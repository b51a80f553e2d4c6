"""Write rendered files to the output tree.

Every file is written through a temporary file and renamed into place, the
writes fan out over a bounded worker pool, and the manifest is written last,
atomically, once every file write has completed.  A crash therefore leaves
either the previous manifest or the new one, never a half-written file.
"""

from __future__ import annotations

import asyncio
import difflib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ..config import DEFAULT_MANIFEST_NAME, TOOL_VERSION
from ..errors import AlreadyExistsError, FileWriteError
from ..resolver.models import ResolvedConfiguration
from ..utils import atomic_write
from .manifest import GenerationManifest, ManifestEntry
from .templates import RenderedFile, utc_timestamp


class MaterializeMode(str, Enum):
    """How ``FileMaterializer.materialize`` treats the output tree."""
    CREATE = "create"
    DRY_RUN = "dry_run"
    APPLY = "apply"


@dataclass
class MaterializationResult:
    """Outcome of one ``materialize`` call."""

    mode: MaterializeMode
    output_root: Path
    manifest: GenerationManifest
    manifest_path: Path
    written: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    sidecars: list[str] = field(default_factory=list)
    diffs: dict[str, str] = field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        return self.mode is MaterializeMode.DRY_RUN


class FileMaterializer:
    """Writes ``RenderedFile`` sets and records them in the manifest."""

    def __init__(self, manifest_name: str = DEFAULT_MANIFEST_NAME, max_workers: int = 8) -> None:
        self.manifest_name = manifest_name
        self.max_workers = max(1, max_workers)

    def manifest_path(self, output_root: Path) -> Path:
        return Path(output_root) / self.manifest_name

    async def materialize(
        self,
        files: Sequence[RenderedFile],
        output_root: str | Path,
        mode: MaterializeMode,
        *,
        resolved: ResolvedConfiguration,
        writable: Optional[Iterable[str]] = None,
        carried: Optional[dict[str, ManifestEntry]] = None,
        removals: Optional[Iterable[str]] = None,
        sidecars: Sequence[RenderedFile] = (),
        generated_at: Optional[str] = None,
    ) -> MaterializationResult:
        """Write *files* under *output_root* and return the new manifest.

        Args:
            files: Rendered files for the run.
            output_root: Project root directory.
            mode: ``CREATE`` refuses to touch a directory holding a manifest,
                ``DRY_RUN`` only computes diffs, ``APPLY`` writes the
                ``writable`` subset chosen by the migration engine.
            resolved: Configuration the files were rendered from.
            writable: Paths to write in ``APPLY`` mode (default: all).
            carried: Manifest entries registered without writing (e.g. files
                the user modified).
            removals: Managed paths to delete.
            sidecars: Untracked files written alongside (conflict proposals).
            generated_at: Timestamp recorded in the manifest.

        Raises:
            AlreadyExistsError: ``CREATE`` mode and a manifest already exists.
            FileWriteError: Any I/O failure; the manifest is left untouched.
        """
        root = Path(output_root)
        manifest_path = self.manifest_path(root)
        if mode is MaterializeMode.CREATE and manifest_path.exists():
            raise AlreadyExistsError(manifest_path)

        timestamp = generated_at or utc_timestamp()
        allowed = None if writable is None else set(writable)
        to_write = [f for f in files if allowed is None or f.path in allowed]
        skipped = [f.path for f in files if allowed is not None and f.path not in allowed]
        to_remove = sorted(set(removals or ()))

        entries: dict[str, ManifestEntry] = dict(carried or {})
        for rendered in to_write:
            entries[rendered.path] = ManifestEntry(
                fingerprint=rendered.fingerprint,
                template_fingerprint=rendered.fingerprint,
                tier=resolved.tier,
                generated_at=timestamp,
            )
        for path in to_remove:
            entries.pop(path, None)

        manifest = GenerationManifest.build(
            resolved, entries, generated_at=timestamp, tool_version=TOOL_VERSION
        )
        result = MaterializationResult(
            mode=mode,
            output_root=root,
            manifest=manifest,
            manifest_path=manifest_path,
            skipped=skipped,
        )

        if mode is MaterializeMode.DRY_RUN:
            result.diffs = await asyncio.to_thread(_compute_diffs, root, to_write)
            result.written = [f.path for f in to_write if f.path in result.diffs]
            result.removed = to_remove
            result.sidecars = [f.path for f in sidecars]
            return result

        result.written = await self._write_all(root, to_write)
        result.sidecars = await self._write_all(root, sidecars)
        result.removed = await asyncio.to_thread(_remove_files, root, to_remove)

        # Barrier: every file write has completed before the manifest is replaced.
        try:
            await asyncio.to_thread(manifest.save, manifest_path)
        except OSError as exc:
            raise FileWriteError(manifest_path, exc) from exc
        return result

    async def _write_all(self, root: Path, files: Sequence[RenderedFile]) -> list[str]:
        semaphore = asyncio.Semaphore(self.max_workers)

        async def _write(rendered: RenderedFile) -> str:
            target = root / rendered.path
            async with semaphore:
                try:
                    await asyncio.to_thread(
                        atomic_write, target, rendered.content, executable=rendered.executable
                    )
                except OSError as exc:
                    raise FileWriteError(target, exc) from exc
            return rendered.path

        tasks = [asyncio.create_task(_write(f)) for f in files]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _compute_diffs(root: Path, files: Sequence[RenderedFile]) -> dict[str, str]:
    """Unified diffs of each file against the live tree; identical files are omitted."""
    diffs: dict[str, str] = {}
    for rendered in files:
        target = root / rendered.path
        if target.is_file():
            current = target.read_bytes()
            if current == rendered.content:
                continue
            before = current.decode("utf-8", errors="replace").splitlines(keepends=True)
            from_name = f"a/{rendered.path}"
        else:
            before = []
            from_name = "/dev/null"
        after = rendered.text.splitlines(keepends=True)
        diffs[rendered.path] = "".join(
            difflib.unified_diff(before, after, fromfile=from_name, tofile=f"b/{rendered.path}")
        )
    return diffs


def _remove_files(root: Path, paths: Sequence[str]) -> list[str]:
    """Delete managed files and prune directories they leave empty."""
    removed: list[str] = []
    resolved_root = root.resolve()
    for rel in paths:
        target = root / rel
        try:
            target.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise FileWriteError(target, exc) from exc
        removed.append(rel)
        parent = target.parent
        while parent.resolve() != resolved_root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
    return removed
