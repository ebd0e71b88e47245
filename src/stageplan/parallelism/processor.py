"""
ParallelismProcessor: assigns a parallelism to every node of a plan DAG.

Pipeline (single pass, no feedback):

    strip sinks -> check acyclic -> ConstraintResolver -> StageBuilder
        -> StageResolver -> Committer

Every step before the commit is read-only. Any error raised along the way
propagates to the caller and leaves every ResourceDescriptor exactly as it
was; only a fully resolved plan is written back.

Usage:
    # Inside a processor chain
    processor = ParallelismProcessor()
    roots = processor.process(roots, ProcessContext(graph=graph, config=config))

    # Directly, keeping the report
    assignment = assign_parallelism(graph, roots, config)
    assignment.parallelism_of(calc)  # 4
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from stageplan.config import ParallelismConfig
from stageplan.graph.node import OperatorNode
from stageplan.graph.plan import NodeRef, PlanGraph
from stageplan.parallelism.commit import Committer
from stageplan.parallelism.constraints import (
    ConstraintResolver,
    FixedParallelismMap,
    FixedParallelismPredicate,
)
from stageplan.parallelism.resolver import StageDecision, StageResolver
from stageplan.parallelism.stages import ShuffleStage, StageBuilder, unique_stages
from stageplan.pipeline import ProcessContext

logger = logging.getLogger(__name__)


@dataclass
class ParallelismAssignment:
    """Read-only report of one successful pass."""

    roots: list[int]
    fixed: FixedParallelismMap
    stages: list[ShuffleStage]
    decisions: list[StageDecision]
    parallelism: dict[int, int]
    config_hash: str
    duration_ms: float = 0.0
    node_to_stage: dict[int, ShuffleStage] = field(default_factory=dict)

    @property
    def node_count(self) -> int:
        return len(self.parallelism)

    @property
    def stage_count(self) -> int:
        return len(self.stages)

    def parallelism_of(self, node: NodeRef) -> int:
        node_id = node.node_id if isinstance(node, OperatorNode) else node
        return self.parallelism[node_id]

    def stage_of(self, node: NodeRef) -> ShuffleStage:
        node_id = node.node_id if isinstance(node, OperatorNode) else node
        return self.node_to_stage[node_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "roots": list(self.roots),
            "config_hash": self.config_hash,
            "duration_ms": round(self.duration_ms, 3),
            "stages": [
                {**d.stage.to_dict(), **d.to_dict()} for d in self.decisions
            ],
            "fixed": {str(k): v.to_dict() for k, v in self.fixed.items()},
            "parallelism": {str(k): v for k, v in self.parallelism.items()},
        }


class ParallelismProcessor:
    """
    The parallelism pass as a DAGProcessor.

    Args:
        predicate: Fixed-parallelism capability query. Defaults to each
            node's ``declared_parallelism()``.
    """

    def __init__(self, predicate: FixedParallelismPredicate | None = None) -> None:
        self._predicate = predicate
        self.last_assignment: ParallelismAssignment | None = None

    def process(
        self,
        roots: list[OperatorNode],
        context: ProcessContext,
    ) -> list[OperatorNode]:
        """
        Assign parallelism to the DAG below ``roots``.

        Returns the very list it was given; the effect is the mutation of
        the nodes' resource descriptors.
        """
        self.last_assignment = self.run(
            context.graph,
            roots,
            context.config,
            environment_parallelism=context.environment_parallelism,
        )
        return roots

    def run(
        self,
        graph: PlanGraph,
        roots: Iterable[NodeRef],
        config: ParallelismConfig,
        environment_parallelism: int | None = None,
    ) -> ParallelismAssignment:
        start = time.perf_counter()

        root_nodes = graph.strip_sinks(roots)
        graph.validate_acyclic(root_nodes)
        nodes = graph.reachable(root_nodes)

        fixed = ConstraintResolver(graph, self._predicate).resolve(root_nodes)
        node_to_stage = StageBuilder(graph).build(root_nodes, fixed)
        stages = unique_stages(node_to_stage)
        decisions = StageResolver(
            graph, config, environment_parallelism
        ).decide(stages)
        resolved = {d.stage: d.parallelism for d in decisions}

        Committer().commit(node_to_stage, resolved, nodes)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Assigned parallelism to %d nodes in %d stages (%d fixed) in %.2fms",
            len(nodes), len(stages), sum(1 for s in stages if s.is_final), duration_ms,
        )

        return ParallelismAssignment(
            roots=[n.node_id for n in root_nodes],
            fixed=fixed,
            stages=stages,
            decisions=decisions,
            parallelism={n.node_id: resolved[node_to_stage[n.node_id]] for n in nodes},
            config_hash=config.config_hash(),
            duration_ms=duration_ms,
            node_to_stage=node_to_stage,
        )


def assign_parallelism(
    graph: PlanGraph,
    roots: Iterable[NodeRef],
    config: ParallelismConfig | None = None,
    *,
    environment_parallelism: int | None = None,
    predicate: FixedParallelismPredicate | None = None,
) -> ParallelismAssignment:
    """Run the parallelism pass once and return its report."""
    processor = ParallelismProcessor(predicate)
    return processor.run(
        graph,
        roots,
        config or ParallelismConfig(),
        environment_parallelism=environment_parallelism,
    )


def preview_stages(
    graph: PlanGraph,
    roots: Iterable[NodeRef],
    predicate: FixedParallelismPredicate | None = None,
) -> list[ShuffleStage]:
    """Shuffle stages of a plan, without resolving or writing anything."""
    root_nodes = graph.strip_sinks(roots)
    graph.validate_acyclic(root_nodes)
    fixed = ConstraintResolver(graph, predicate).resolve(root_nodes)
    return unique_stages(StageBuilder(graph).build(root_nodes, fixed))
