"""tiergen migrator -- move a generated project to another tier without losing user edits.

Quick usage::

    from tiergen.migrator import MigrationEngine

    engine = MigrationEngine()
    plan = await engine.plan(prior_manifest, rendered_files, root, target_tier=Tier.ADVANCED)
    result = await engine.apply(plan, root, resolved, FileMaterializer())
"""

from .models import DecisionKind, MigrationDecision, MigrationPlan, MigrationResult, RunState
from .planner import MigrationEngine, classify, classify_dropped

__all__ = [
    "DecisionKind",
    "MigrationDecision",
    "MigrationEngine",
    "MigrationPlan",
    "MigrationResult",
    "RunState",
    "classify",
    "classify_dropped",
]
