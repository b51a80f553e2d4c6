"""Three-way migration between a recorded manifest and a new render.

For every path the planner compares three fingerprints: the template render
recorded in the prior manifest (``T``), the file currently on disk (``L``)
and the new render (``N``).  The classification drives what the apply phase
may write:

==================  ==================================  =====================
kind                condition                           action
==================  ==================================  =====================
``new``             not in prior manifest, or missing   written
``unchanged``       ``L == N``                          written (no-op)
``engine_update``   ``N != T`` and ``L == T``           written
``user_modified``   ``N == T`` and ``L != T``           kept, re-registered
``conflict``        ``N != T`` and ``L != T``           kept, proposal sidecar
``removed``         recorded, not rendered, pristine    deleted
``orphaned``        recorded, not rendered, edited      kept, untracked
==================  ==================================  =====================
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Collection, Optional, Sequence

from ..config import DEFAULT_PROPOSAL_SUFFIX
from ..errors import FileWriteError
from ..resolver.models import ResolvedConfiguration, Tier
from ..scaffolder.manifest import GenerationManifest, ManifestEntry
from ..scaffolder.materializer import FileMaterializer, MaterializeMode
from ..scaffolder.repository import component_of
from ..scaffolder.templates import RenderedFile, fingerprint, utc_timestamp
from .backup import backup_files
from .models import DecisionKind, MigrationDecision, MigrationPlan, MigrationResult, RunState


def classify(
    *,
    entry: Optional[ManifestEntry],
    live: Optional[str],
    proposed: str,
) -> tuple[DecisionKind, str]:
    """Classify one rendered path. Returns the kind and a short reason."""
    if entry is None:
        if live is None:
            return DecisionKind.NEW, "not in the prior manifest"
        if live == proposed:
            return DecisionKind.UNCHANGED, "untracked file already matches the template"
        return DecisionKind.CONFLICT, "untracked file exists with different content"
    if live is None:
        return DecisionKind.NEW, "file missing on disk; restored"
    if live == proposed:
        return DecisionKind.UNCHANGED, "file already matches the new render"

    recorded = entry.template_fingerprint
    if proposed == recorded:
        return DecisionKind.USER_MODIFIED, "edited by the user; template unchanged"
    if live == recorded:
        return DecisionKind.ENGINE_UPDATE, "template changed; file untouched"
    return DecisionKind.CONFLICT, "edited by the user and changed by the template"


def classify_dropped(entry: ManifestEntry, live: Optional[str]) -> tuple[DecisionKind, str]:
    """Classify a recorded path the new artifact set no longer produces."""
    if live is None or live == entry.template_fingerprint:
        return DecisionKind.REMOVED, "no longer generated for this configuration"
    return DecisionKind.ORPHANED, "no longer generated; kept because it was edited"


class MigrationEngine:
    """Plans and applies a migration of a generated project.

    ``state`` follows ``planning -> applying -> complete | partial_success``;
    an I/O failure while applying moves it to ``failed`` and leaves the prior
    manifest in place.
    """

    def __init__(
        self,
        max_workers: int = 8,
        *,
        write_proposals: bool = True,
        proposal_suffix: str = DEFAULT_PROPOSAL_SUFFIX,
    ) -> None:
        self.max_workers = max(1, max_workers)
        self.write_proposals = write_proposals
        self.proposal_suffix = proposal_suffix
        self.state = RunState.PLANNING

    # -- Planning (read-only) ----------------------------------------------

    async def plan(
        self,
        prior: GenerationManifest,
        rendered_files: Sequence[RenderedFile],
        output_root: str | Path,
        *,
        target_tier: Tier,
    ) -> MigrationPlan:
        """Classify every rendered path and every path in *prior*."""
        self.state = RunState.PLANNING
        root = Path(output_root)
        rendered_by_path = {f.path: f for f in rendered_files}
        paths = sorted(set(rendered_by_path) | set(prior.files))

        semaphore = asyncio.Semaphore(self.max_workers)

        async def _live(path: str) -> Optional[str]:
            async with semaphore:
                return await asyncio.to_thread(_live_fingerprint, root / path)

        tasks = [asyncio.create_task(_live(p)) for p in paths]
        try:
            live_fingerprints = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        decisions: list[MigrationDecision] = []
        for path, live in zip(paths, live_fingerprints):
            entry = prior.files.get(path)
            rendered = rendered_by_path.get(path)
            if rendered is None:
                # Only prior entries reach here.
                kind, reason = classify_dropped(entry, live)
                decisions.append(
                    MigrationDecision(
                        path=path,
                        kind=kind,
                        live_fingerprint=live,
                        recorded_fingerprint=entry.fingerprint,
                        template_fingerprint=entry.template_fingerprint,
                        reason=reason,
                    )
                )
                continue

            kind, reason = classify(entry=entry, live=live, proposed=rendered.fingerprint)
            decisions.append(
                MigrationDecision(
                    path=path,
                    kind=kind,
                    artifact_id=rendered.artifact_id,
                    live_fingerprint=live,
                    recorded_fingerprint=entry.fingerprint if entry else None,
                    template_fingerprint=entry.template_fingerprint if entry else None,
                    proposed_fingerprint=rendered.fingerprint,
                    rendered=rendered,
                    reason=reason,
                )
            )

        return MigrationPlan(decisions=decisions, source_tier=prior.tier, target_tier=target_tier)

    # -- Applying -------------------------------------------------------------

    async def apply(
        self,
        plan: MigrationPlan,
        output_root: str | Path,
        resolved: ResolvedConfiguration,
        materializer: FileMaterializer,
        *,
        dry_run: bool = False,
        generated_at: Optional[str] = None,
        components: Optional[Collection[str]] = None,
        backup: bool = False,
    ) -> MigrationResult:
        """Write the writable decisions and record the new manifest.

        Args:
            components: When given, only paths in these components are
                written or removed; the rest keep their prior manifest entry
                and are reported as deferred.
            backup: Copy every file about to be overwritten or deleted into
                ``<root>.backup.<timestamp>`` first (ignored in dry-run mode).

        Raises:
            FileWriteError: On any I/O failure; ``state`` becomes ``failed``.
        """
        self.state = RunState.APPLYING
        timestamp = generated_at or utc_timestamp()
        root = Path(output_root)
        selected = None if components is None else frozenset(components)

        rendered = [d.rendered for d in plan.decisions if d.rendered is not None]
        writable: list[str] = []
        carried: dict[str, ManifestEntry] = {}
        sidecars: list[RenderedFile] = []
        removals: list[str] = []
        deferred: list[str] = []
        replaced: list[str] = []

        for decision in plan.decisions:
            if selected is not None and component_of(decision.path) not in selected:
                deferred.append(decision.path)
                if decision.recorded_fingerprint is not None:
                    carried[decision.path] = self._prior_entry(decision, plan, timestamp)
                continue

            if decision.kind is not DecisionKind.CONFLICT:
                stale = decision.path + self.proposal_suffix
                if (root / stale).is_file():
                    removals.append(stale)

            if decision.kind.writes:
                writable.append(decision.path)
                if decision.live_fingerprint not in (None, decision.proposed_fingerprint):
                    replaced.append(decision.path)
            elif decision.kind is DecisionKind.USER_MODIFIED:
                carried[decision.path] = ManifestEntry(
                    fingerprint=decision.live_fingerprint,
                    template_fingerprint=decision.template_fingerprint,
                    tier=resolved.tier,
                    generated_at=timestamp,
                )
            elif decision.kind is DecisionKind.CONFLICT:
                if decision.recorded_fingerprint is not None:
                    # The prior entry stays until the user resolves the conflict.
                    carried[decision.path] = self._prior_entry(decision, plan, timestamp)
                if self.write_proposals and decision.rendered is not None:
                    sidecars.append(self._proposal(decision.rendered))
            elif decision.kind is DecisionKind.REMOVED and decision.live_fingerprint is not None:
                removals.append(decision.path)
                replaced.append(decision.path)

        backup_dir = None
        if backup and not dry_run:
            try:
                backup_dir = await asyncio.to_thread(backup_files, root, replaced, timestamp)
            except FileWriteError:
                self.state = RunState.FAILED
                raise

        mode = MaterializeMode.DRY_RUN if dry_run else MaterializeMode.APPLY
        try:
            materialization = await materializer.materialize(
                rendered,
                output_root,
                mode,
                resolved=resolved,
                writable=writable,
                carried=carried,
                removals=removals,
                sidecars=sidecars,
                generated_at=timestamp,
            )
        except FileWriteError:
            self.state = RunState.FAILED
            raise

        self.state = RunState.PARTIAL_SUCCESS if plan.has_conflicts else RunState.COMPLETE
        return MigrationResult(
            state=self.state,
            plan=plan,
            materialization=materialization,
            deferred=deferred,
            backup_dir=backup_dir,
        )

    @staticmethod
    def _prior_entry(decision: MigrationDecision, plan: MigrationPlan, timestamp: str) -> ManifestEntry:
        return ManifestEntry(
            fingerprint=decision.recorded_fingerprint,
            template_fingerprint=decision.template_fingerprint,
            tier=plan.source_tier,
            generated_at=timestamp,
        )

    def _proposal(self, rendered: RenderedFile) -> RenderedFile:
        return RenderedFile(
            artifact_id=rendered.artifact_id,
            path=rendered.path + self.proposal_suffix,
            content=rendered.content,
            fingerprint=rendered.fingerprint,
            executable=rendered.executable,
        )


def _live_fingerprint(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    try:
        return fingerprint(path.read_bytes())
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise FileWriteError(path, exc) from exc
