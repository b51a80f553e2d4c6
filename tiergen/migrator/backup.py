"""Pre-apply backups of files a migration is about to overwrite or delete."""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Optional, Sequence

from ..errors import FileWriteError


def backup_dir_for(root: Path, timestamp: str) -> Path:
    """Return a fresh ``<root>.backup.<YYYYmmddHHMMSS>`` sibling directory path."""
    root = root.resolve()
    stamp = re.sub(r"\D", "", timestamp)[:14]
    candidate = root.parent / f"{root.name}.backup.{stamp}"
    counter = 1
    while candidate.exists():
        candidate = root.parent / f"{root.name}.backup.{stamp}-{counter}"
        counter += 1
    return candidate


def backup_files(root: str | Path, paths: Sequence[str], timestamp: str) -> Optional[Path]:
    """Copy *paths* (relative to *root*) into a new backup directory.

    Relative paths are preserved.  Returns the backup directory, or ``None``
    when none of *paths* exists on disk.

    Raises:
        FileWriteError: If a copy fails.
    """
    root = Path(root)
    existing = [p for p in sorted(set(paths)) if (root / p).is_file()]
    if not existing:
        return None

    target_dir = backup_dir_for(root, timestamp)
    for rel in existing:
        destination = target_dir / rel
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(root / rel, destination)
        except OSError as exc:
            raise FileWriteError(destination, exc) from exc
    return target_dir
