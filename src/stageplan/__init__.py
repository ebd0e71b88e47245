"""stageplan - parallelism assignment for query execution plan DAGs."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from stageplan.exceptions import (
    StagePlanError,
    ParallelismError,
    ConstraintConflict,
    InvalidParallelism,
    CommitInvariantError,
    PlanGraphError,
    UnknownNodeError,
    CycleDetectedError,
    ConfigurationError,
    PlanLoadError,
)

# Plan graph
from stageplan.graph import (
    Edge,
    ExchangeMode,
    NodeKind,
    NodeStatistics,
    OperatorNode,
    PlanGraph,
    ResourceDescriptor,
)

from stageplan.config import (
    ParallelismConfig,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)
from stageplan.pipeline import DAGProcessor, ProcessContext, ProcessorChain
from stageplan.parallelism import (
    Committer,
    ConstraintResolver,
    FixedParallelism,
    ParallelismAssignment,
    ParallelismProcessor,
    ShuffleStage,
    StageBuilder,
    StageResolver,
    assign_parallelism,
    preview_stages,
)
from stageplan.loader import LoadedPlan, load_plan

__all__ = [
    "__version__",
    # Exceptions
    "StagePlanError",
    "ParallelismError",
    "ConstraintConflict",
    "InvalidParallelism",
    "CommitInvariantError",
    "PlanGraphError",
    "UnknownNodeError",
    "CycleDetectedError",
    "ConfigurationError",
    "PlanLoadError",
    # Graph
    "Edge",
    "ExchangeMode",
    "NodeKind",
    "NodeStatistics",
    "OperatorNode",
    "PlanGraph",
    "ResourceDescriptor",
    # Config
    "ParallelismConfig",
    "get_config",
    "load_config_from_env",
    "load_config_from_file",
    "reset_config",
    # Pipeline
    "DAGProcessor",
    "ProcessContext",
    "ProcessorChain",
    # Parallelism
    "Committer",
    "ConstraintResolver",
    "FixedParallelism",
    "ParallelismAssignment",
    "ParallelismProcessor",
    "ShuffleStage",
    "StageBuilder",
    "StageResolver",
    "assign_parallelism",
    "preview_stages",
    # Loader
    "LoadedPlan",
    "load_plan",
]
