"""
Shuffle stage generation.

A shuffle stage is a maximal set of nodes connected only through coupled
(FORWARD / SINGLETON) edges. Every member must end with the same
parallelism, so stages are computed as the connected components of the
coupled-edge relation with a disjoint set keyed by node id.

Each set representative carries an optional FixedParallelism payload. Two
sets carrying different fixed values can never be merged: that is a
ConstraintConflict, not something to be papered over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Hashable, Iterable, TypeVar

from stageplan.exceptions import ConstraintConflict
from stageplan.graph.plan import NodeRef, PlanGraph
from stageplan.parallelism.constraints import FixedParallelism, FixedParallelismMap

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
P = TypeVar("P")


class DisjointSet(Generic[K, P]):
    """
    Union-find with path compression, union by size and a payload per set.

    On union the payload of the surviving set is the first non-None
    payload of the two (the caller decides beforehand whether a merge of
    two payloads is legal).
    """

    def __init__(self) -> None:
        self._parent: dict[K, K] = {}
        self._size: dict[K, int] = {}
        self._payload: dict[K, P | None] = {}

    def add(self, item: K, payload: P | None = None) -> None:
        if item in self._parent:
            return
        self._parent[item] = item
        self._size[item] = 1
        self._payload[item] = payload

    def find(self, item: K) -> K:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def payload(self, item: K) -> P | None:
        return self._payload[self.find(item)]

    def union(self, a: K, b: K) -> K:
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return root_a

        payload = self._payload[root_a]
        if payload is None:
            payload = self._payload[root_b]

        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        self._payload[root_a] = payload
        del self._payload[root_b]
        return root_a

    def __contains__(self, item: object) -> bool:
        return item in self._parent

    def __len__(self) -> int:
        return len(self._parent)


@dataclass(frozen=True)
class ShuffleStage:
    """
    A group of nodes that must share one parallelism.

    Fields:
        stage_id: Index in first-reached order
        members: Member node ids, in traversal order
        fixed_parallelism: The fixed value when the stage is constrained
        origin: Node the fixed value originated from
    """

    stage_id: int
    members: tuple[int, ...]
    fixed_parallelism: int | None = None
    origin: int | None = None

    @property
    def is_final(self) -> bool:
        """Whether the parallelism came from a fixed constraint."""
        return self.fixed_parallelism is not None

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.members

    def __len__(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict[str, object]:
        return {
            "stage_id": self.stage_id,
            "members": list(self.members),
            "is_final": self.is_final,
            "fixed_parallelism": self.fixed_parallelism,
            "origin": self.origin,
        }


class StageBuilder:
    """
    Clusters reachable nodes into shuffle stages.

    Usage:
        builder = StageBuilder(graph)
        node_to_stage = builder.build(roots, fixed)
        stages = unique_stages(node_to_stage)
    """

    def __init__(self, graph: PlanGraph) -> None:
        self._graph = graph

    def build(
        self,
        roots: Iterable[NodeRef],
        fixed: FixedParallelismMap,
    ) -> dict[int, ShuffleStage]:
        """
        Build the node id -> stage mapping.

        Raises:
            ConstraintConflict: If a coupled edge joins two stages fixed to
                different values
        """
        nodes = self._graph.reachable(roots)
        sets: DisjointSet[int, FixedParallelism] = DisjointSet()

        for node in nodes:
            sets.add(node.node_id, fixed.get(node.node_id))

        for node in nodes:
            for edge in self._graph.inputs(node):
                if not edge.is_coupled:
                    continue

                left = sets.payload(edge.source)
                right = sets.payload(edge.target)
                if (
                    left is not None
                    and right is not None
                    and left.value != right.value
                ):
                    raise ConstraintConflict(
                        edge.target,
                        left.value,
                        left.origin,
                        right.value,
                        right.origin,
                        detail=(
                            f"{edge.mode.value} edge {edge.source} -> {edge.target} "
                            f"joins stages with different fixed parallelism"
                        ),
                    )

                sets.union(edge.source, edge.target)
                logger.debug(
                    "Merged nodes %d and %d across %s edge",
                    edge.source, edge.target, edge.mode.value,
                )

        # Materialize stages in first-reached order
        members: dict[int, list[int]] = {}
        for node in nodes:
            members.setdefault(sets.find(node.node_id), []).append(node.node_id)

        node_to_stage: dict[int, ShuffleStage] = {}
        for stage_id, (root, member_ids) in enumerate(members.items()):
            payload = sets.payload(root)
            stage = ShuffleStage(
                stage_id=stage_id,
                members=tuple(member_ids),
                fixed_parallelism=payload.value if payload else None,
                origin=payload.origin if payload else None,
            )
            for member in member_ids:
                node_to_stage[member] = stage

        logger.debug(
            "Built %d shuffle stages from %d nodes", len(members), len(nodes)
        )
        return node_to_stage


def unique_stages(node_to_stage: dict[int, ShuffleStage]) -> list[ShuffleStage]:
    """Distinct stages of a mapping, ordered by stage id."""
    seen: dict[int, ShuffleStage] = {}
    for stage in node_to_stage.values():
        seen.setdefault(stage.stage_id, stage)
    return [seen[k] for k in sorted(seen)]
