"""Migration plan and result types."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from ..resolver.models import Tier
from ..scaffolder.manifest import GenerationManifest
from ..scaffolder.materializer import MaterializationResult
from ..scaffolder.templates import RenderedFile


class DecisionKind(str, Enum):
    """Per-file classification of a migration."""

    UNCHANGED = "unchanged"
    ENGINE_UPDATE = "engine_update"
    USER_MODIFIED = "user_modified"
    CONFLICT = "conflict"
    NEW = "new"
    # Prior manifest entries with no counterpart in the new artifact set.
    REMOVED = "removed"
    ORPHANED = "orphaned"

    @property
    def writes(self) -> bool:
        """True for the kinds whose rendered content is written automatically."""
        return self in (DecisionKind.NEW, DecisionKind.UNCHANGED, DecisionKind.ENGINE_UPDATE)


@dataclass(frozen=True)
class MigrationDecision:
    """The classification of one output path and the fingerprints behind it."""

    path: str
    kind: DecisionKind
    artifact_id: str = ""
    live_fingerprint: Optional[str] = None
    recorded_fingerprint: Optional[str] = None
    template_fingerprint: Optional[str] = None
    proposed_fingerprint: Optional[str] = None
    rendered: Optional[RenderedFile] = field(default=None, repr=False, compare=False)
    reason: str = ""


class RunState(str, Enum):
    PLANNING = "planning"
    APPLYING = "applying"
    COMPLETE = "complete"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


@dataclass
class MigrationPlan:
    """Ordered decisions for every path in the prior manifest or the new render."""

    decisions: list[MigrationDecision]
    source_tier: Optional[Tier]
    target_tier: Tier

    @property
    def conflicts(self) -> list[MigrationDecision]:
        return self.by_kind(DecisionKind.CONFLICT)

    @property
    def has_conflicts(self) -> bool:
        return any(d.kind is DecisionKind.CONFLICT for d in self.decisions)

    @property
    def writable_paths(self) -> list[str]:
        return [d.path for d in self.decisions if d.kind.writes]

    def by_kind(self, kind: DecisionKind) -> list[MigrationDecision]:
        return [d for d in self.decisions if d.kind is kind]

    def decision_for(self, path: str) -> Optional[MigrationDecision]:
        for decision in self.decisions:
            if decision.path == path:
                return decision
        return None

    def summary(self) -> dict[str, int]:
        counts = Counter(d.kind for d in self.decisions)
        return {kind.value: counts.get(kind, 0) for kind in DecisionKind}


@dataclass
class MigrationResult:
    state: RunState
    plan: MigrationPlan
    materialization: MaterializationResult
    # Classified paths left alone because their component was not selected.
    deferred: list[str] = field(default_factory=list)
    backup_dir: Optional[Path] = None

    @property
    def manifest(self) -> GenerationManifest:
        return self.materialization.manifest

    @property
    def conflicts(self) -> list[MigrationDecision]:
        return self.plan.conflicts

    def conflict_report(self) -> list[tuple[str, str, str]]:
        """``(path, live_fingerprint, proposed_fingerprint)`` for every conflict."""
        return [
            (d.path, d.live_fingerprint or "", d.proposed_fingerprint or "")
            for d in self.plan.conflicts
        ]
