"""
PlanGraph: a flat arena of operator nodes plus index-pair edges.

The arena is what the parallelism pass reads. Nodes are addressed by their
integer id; edges are stored per consumer (inputs) and per producer
(outputs), both in insertion order, so every walk over the graph visits
nodes and edges in the same order on every run.

Usage:
    graph = PlanGraph()
    scan = graph.add_node("scan(orders)", kind=NodeKind.SOURCE, fixed_partitions=4)
    calc = graph.add_node("calc")
    graph.connect(scan, calc, ExchangeMode.FORWARD)

    for node in graph.reachable([calc]):
        ...
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Union

from stageplan.exceptions import CycleDetectedError, PlanGraphError, UnknownNodeError
from stageplan.graph.exchange import ExchangeMode
from stageplan.graph.node import (
    Edge,
    NodeKind,
    NodeStatistics,
    OperatorNode,
    ResourceDescriptor,
)

logger = logging.getLogger(__name__)

NodeRef = Union[OperatorNode, int]


class PlanGraph:
    """
    Arena-backed execution plan DAG.

    Invariants:
        - ``nodes[i].node_id == i`` for every node
        - every edge endpoint is a node of this graph
        - inputs/outputs lists preserve insertion order
    """

    def __init__(self) -> None:
        self._nodes: list[OperatorNode] = []
        self._inputs: list[list[Edge]] = []
        self._outputs: list[list[Edge]] = []

    # =========================================================================
    # Construction
    # =========================================================================

    def add_node(
        self,
        name: str,
        kind: NodeKind = NodeKind.OPERATOR,
        *,
        fixed_partitions: int | None = None,
        max_parallelism: int | None = None,
        statistics: NodeStatistics | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> OperatorNode:
        """Append a node to the arena and return it."""
        node = OperatorNode(
            node_id=len(self._nodes),
            name=name,
            kind=kind,
            resource=ResourceDescriptor(max_parallelism=max_parallelism),
            statistics=statistics,
            fixed_partitions=fixed_partitions,
            attributes=dict(attributes or {}),
        )
        self._nodes.append(node)
        self._inputs.append([])
        self._outputs.append([])
        return node

    def connect(
        self,
        producer: NodeRef,
        consumer: NodeRef,
        mode: ExchangeMode = ExchangeMode.FORWARD,
    ) -> Edge:
        """Add a producer -> consumer edge."""
        source = self._index(producer)
        target = self._index(consumer)
        if source == target:
            raise PlanGraphError(f"Self-loop on node {source} is not allowed")
        edge = Edge(
            source=source,
            target=target,
            mode=mode,
            ordinal=len(self._inputs[target]),
        )
        self._inputs[target].append(edge)
        self._outputs[source].append(edge)
        return edge

    # =========================================================================
    # Access
    # =========================================================================

    def node(self, ref: NodeRef) -> OperatorNode:
        return self._nodes[self._index(ref)]

    @property
    def nodes(self) -> list[OperatorNode]:
        return list(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edges(self) -> list[Edge]:
        """All edges, grouped by consumer in node order."""
        return [edge for inputs in self._inputs for edge in inputs]

    def inputs(self, ref: NodeRef) -> list[Edge]:
        """Inbound edges of a node, in input order."""
        return list(self._inputs[self._index(ref)])

    def outputs(self, ref: NodeRef) -> list[Edge]:
        """Outbound edges of a node, in insertion order."""
        return list(self._outputs[self._index(ref)])

    def input_nodes(self, ref: NodeRef) -> list[OperatorNode]:
        return [self._nodes[e.source] for e in self._inputs[self._index(ref)]]

    def __contains__(self, ref: object) -> bool:
        if isinstance(ref, OperatorNode):
            return 0 <= ref.node_id < len(self._nodes) and self._nodes[ref.node_id] is ref
        if isinstance(ref, int) and not isinstance(ref, bool):
            return 0 <= ref < len(self._nodes)
        return False

    def __iter__(self) -> Iterator[OperatorNode]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    # =========================================================================
    # Traversal
    # =========================================================================

    def reachable(self, roots: Iterable[NodeRef]) -> list[OperatorNode]:
        """
        Nodes reachable from the roots by walking inputs (consumer -> producer).

        Depth-first pre-order: a root, then its first input's subtree, then
        the next input. Each node appears once, at its first visit.
        """
        seen: set[int] = set()
        order: list[OperatorNode] = []

        for root in roots:
            stack = [self._index(root)]
            while stack:
                node_id = stack.pop()
                if node_id in seen:
                    continue
                seen.add(node_id)
                order.append(self._nodes[node_id])
                # Reversed so the first input is visited first
                for edge in reversed(self._inputs[node_id]):
                    if edge.source not in seen:
                        stack.append(edge.source)

        return order

    def find_cycle(self, roots: Iterable[NodeRef]) -> list[int] | None:
        """
        Detect a cycle in the subgraph reachable from the roots.

        Returns the cycle path (first node repeated at the end) if found,
        None otherwise.

        Walks with an explicit stack of input iterators, so plan depth is
        not limited by the interpreter's recursion limit.
        """
        WHITE, GRAY, BLACK = 0, 1, 2
        colors: dict[int, int] = {}

        for root in roots:
            root_id = self._index(root)
            if colors.get(root_id, WHITE) != WHITE:
                continue

            colors[root_id] = GRAY
            path: list[int] = [root_id]
            frames: list[Iterator[Edge]] = [iter(self._inputs[root_id])]

            while frames:
                edge = next(frames[-1], None)
                if edge is None:
                    colors[path.pop()] = BLACK
                    frames.pop()
                    continue

                color = colors.get(edge.source, WHITE)
                if color == GRAY:
                    cycle_start = path.index(edge.source)
                    cycle = path[cycle_start:] + [edge.source]
                    # Walked against edge direction; report producer -> consumer
                    return list(reversed(cycle))
                if color == WHITE:
                    colors[edge.source] = GRAY
                    path.append(edge.source)
                    frames.append(iter(self._inputs[edge.source]))

        return None

    def validate_acyclic(self, roots: Iterable[NodeRef]) -> None:
        """
        Raises:
            CycleDetectedError: If the reachable subgraph contains a cycle
        """
        cycle = self.find_cycle(list(roots))
        if cycle:
            raise CycleDetectedError(cycle)

    def strip_sinks(self, roots: Iterable[NodeRef]) -> list[OperatorNode]:
        """
        Replace sink wrapper roots by their first input.

        Sink parallelism depends on details only known after translation,
        so sinks are kept out of the pass entirely.
        """
        stripped: list[OperatorNode] = []
        for root in roots:
            node = self.node(root)
            if node.is_sink:
                inputs = self._inputs[node.node_id]
                if not inputs:
                    raise PlanGraphError(f"Sink node {node.node_id} has no input")
                logger.debug("Stripping sink %s", node.name)
                stripped.append(self._nodes[inputs[0].source])
            else:
                stripped.append(node)
        return stripped

    # =========================================================================
    # Helpers
    # =========================================================================

    def _index(self, ref: NodeRef) -> int:
        if isinstance(ref, OperatorNode):
            node_id = ref.node_id
            if not (0 <= node_id < len(self._nodes)) or self._nodes[node_id] is not ref:
                raise UnknownNodeError(node_id)
            return node_id
        if isinstance(ref, int) and not isinstance(ref, bool):
            if not (0 <= ref < len(self._nodes)):
                raise UnknownNodeError(ref)
            return ref
        raise TypeError(f"Expected OperatorNode or int, got {type(ref).__name__}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize topology and current parallelism for JSON output."""
        return {
            "nodes": [
                {
                    "id": n.node_id,
                    "name": n.name,
                    "kind": n.kind.value,
                    "parallelism": n.resource.parallelism,
                    "max_parallelism": n.resource.max_parallelism,
                    "fixed_partitions": n.fixed_partitions,
                }
                for n in self._nodes
            ],
            "edges": [e.to_dict() for e in self.edges],
        }

    def __repr__(self) -> str:
        return f"PlanGraph(nodes={len(self._nodes)}, edges={len(self.edges)})"
