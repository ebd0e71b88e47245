"""
Parallelism assignment for plan DAGs.

- **constraints.py**: which nodes have an externally fixed parallelism
- **stages.py**: union-find clustering into shuffle stages
- **resolver.py**: one concrete value per stage
- **commit.py**: atomic write-back into node resources
- **processor.py**: the pass that chains the four steps
"""

from stageplan.parallelism.commit import Committer
from stageplan.parallelism.constraints import (
    ConstraintResolver,
    FixedParallelism,
    FixedParallelismMap,
    FixedParallelismPredicate,
    FixedReason,
    declared_parallelism,
)
from stageplan.parallelism.processor import (
    ParallelismAssignment,
    ParallelismProcessor,
    assign_parallelism,
    preview_stages,
)
from stageplan.parallelism.resolver import DerivationSource, StageDecision, StageResolver
from stageplan.parallelism.stages import DisjointSet, ShuffleStage, StageBuilder, unique_stages

__all__ = [
    "Committer",
    "ConstraintResolver",
    "FixedParallelism",
    "FixedParallelismMap",
    "FixedParallelismPredicate",
    "FixedReason",
    "declared_parallelism",
    "ParallelismAssignment",
    "ParallelismProcessor",
    "assign_parallelism",
    "preview_stages",
    "DerivationSource",
    "StageDecision",
    "StageResolver",
    "DisjointSet",
    "ShuffleStage",
    "StageBuilder",
    "unique_stages",
]
