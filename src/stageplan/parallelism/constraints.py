"""
Constraint resolution: which nodes have a parallelism fixed from outside.

A node is fixed when
- the fixed-parallelism predicate reports a partition bound for it
  (by default the node's own ``declared_parallelism()``),
- one of its inputs arrives through a SINGLETON exchange (value 1), or
- it shares a FORWARD edge, in either direction, with a fixed node.

The last rule is applied with a worklist until nothing changes. The walk
only covers nodes reachable from the roots, in the graph's deterministic
traversal order, so the same plan always yields the same map and, on
conflict, the same error.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum, unique
from typing import Callable, Iterable

from stageplan.exceptions import ConstraintConflict, InvalidParallelism
from stageplan.graph.exchange import ExchangeMode
from stageplan.graph.node import OperatorNode
from stageplan.graph.plan import NodeRef, PlanGraph

logger = logging.getLogger(__name__)

FixedParallelismPredicate = Callable[[OperatorNode], "int | None"]


@unique
class FixedReason(str, Enum):
    """Why a node ended up with a fixed parallelism."""

    DECLARED = "declared"                  # Partition-bounded source
    SINGLETON_INPUT = "singleton_input"    # Fed through a SINGLETON exchange
    FORWARD = "forward"                    # Inherited across a FORWARD edge


@dataclass(frozen=True)
class FixedParallelism:
    """A fixed value together with the node it originated from."""

    value: int
    origin: int
    reason: FixedReason

    def to_dict(self) -> dict[str, object]:
        return {
            "value": self.value,
            "origin": self.origin,
            "reason": self.reason.value,
        }


FixedParallelismMap = dict[int, FixedParallelism]


def declared_parallelism(node: OperatorNode) -> int | None:
    """Default predicate: ask the node itself."""
    return node.declared_parallelism()


class ConstraintResolver:
    """
    Computes the sparse node id -> fixed parallelism map for a plan.

    Usage:
        resolver = ConstraintResolver(graph)
        fixed = resolver.resolve(roots)
        fixed[scan.node_id].value  # e.g. 4
    """

    def __init__(
        self,
        graph: PlanGraph,
        predicate: FixedParallelismPredicate | None = None,
    ) -> None:
        self._graph = graph
        self._predicate = predicate or declared_parallelism

    def resolve(self, roots: Iterable[NodeRef]) -> FixedParallelismMap:
        """
        Resolve fixed parallelism for every node reachable from ``roots``.

        Raises:
            ConstraintConflict: If a node would receive two different values
            InvalidParallelism: If the predicate reports a non-positive bound
        """
        nodes = self._graph.reachable(roots)
        reachable_ids = {node.node_id for node in nodes}

        fixed: FixedParallelismMap = {}
        queue: deque[int] = deque()

        # Seed with intrinsic constraints
        for node in nodes:
            declared = self._predicate(node)
            if declared is not None:
                value = _check_declared(node, declared)
                self._assign(
                    fixed, queue, node.node_id,
                    FixedParallelism(value, node.node_id, FixedReason.DECLARED),
                )

            if any(e.mode == ExchangeMode.SINGLETON for e in self._graph.inputs(node)):
                self._assign(
                    fixed, queue, node.node_id,
                    FixedParallelism(1, node.node_id, FixedReason.SINGLETON_INPUT),
                )

        # Propagate across FORWARD edges until a fixpoint
        while queue:
            node_id = queue.popleft()
            current = fixed[node_id]
            for neighbor in self._forward_neighbors(node_id, reachable_ids):
                self._assign(
                    fixed, queue, neighbor,
                    FixedParallelism(current.value, current.origin, FixedReason.FORWARD),
                )

        logger.debug(
            "Resolved %d fixed constraints over %d reachable nodes",
            len(fixed), len(nodes),
        )
        return fixed

    def _forward_neighbors(self, node_id: int, reachable_ids: set[int]) -> list[int]:
        neighbors = [
            e.source for e in self._graph.inputs(node_id)
            if e.mode == ExchangeMode.FORWARD
        ]
        neighbors.extend(
            e.target for e in self._graph.outputs(node_id)
            if e.mode == ExchangeMode.FORWARD and e.target in reachable_ids
        )
        return neighbors

    @staticmethod
    def _assign(
        fixed: FixedParallelismMap,
        queue: deque[int],
        node_id: int,
        candidate: FixedParallelism,
    ) -> None:
        existing = fixed.get(node_id)
        if existing is not None:
            if existing.value != candidate.value:
                raise ConstraintConflict(
                    node_id,
                    existing.value,
                    existing.origin,
                    candidate.value,
                    candidate.origin,
                    detail=f"{existing.reason.value} vs {candidate.reason.value}",
                )
            return

        fixed[node_id] = candidate
        queue.append(node_id)
        logger.debug(
            "Node %d fixed to %d (%s, origin %d)",
            node_id, candidate.value, candidate.reason.value, candidate.origin,
        )


def _check_declared(node: OperatorNode, declared: object) -> int:
    if isinstance(declared, bool) or not isinstance(declared, int) or declared < 1:
        raise InvalidParallelism(
            f"Node {node.node_id} ({node.name}) declares invalid fixed "
            f"parallelism {declared!r}",
            value=declared,
            node_id=node.node_id,
        )
    return declared
