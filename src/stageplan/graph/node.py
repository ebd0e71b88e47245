"""
Operator nodes, edges and their per-node metadata.

OperatorNode is a vertex of the plan arena. It does not hold references to
its neighbours: topology lives in PlanGraph as index pairs, so a node with
many consumers has no ownership ambiguity and traversal order is stable.

Design principles:
- Identity is the integer ``node_id`` (arena index), never object identity
- Statistics are immutable facts supplied by the planner
- The ResourceDescriptor is the only mutable part, and only the commit step
  writes its ``parallelism``
- Fixed parallelism is a capability query on the node
  (``declared_parallelism()``), not knowledge baked into traversal code
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any

from stageplan.graph.exchange import ExchangeMode


@unique
class NodeKind(str, Enum):
    """Coarse operator classification the pass cares about."""

    SOURCE = "source"
    OPERATOR = "operator"
    SINK = "sink"


def _usable(value: float | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    return float(value)


# =============================================================================
# Statistics
# =============================================================================


@dataclass(frozen=True)
class NodeStatistics:
    """
    Planner estimates for a single node.

    Any field may be missing. Negative, NaN or infinite numbers are treated
    as missing rather than rejected.
    """

    estimated_rows: float | None = None
    estimated_bytes: float | None = None
    row_width: int | None = None  # average output row width in bytes

    @property
    def rows(self) -> float | None:
        return _usable(self.estimated_rows)

    @property
    def volume(self) -> float | None:
        """Estimated output volume in bytes, if it can be known."""
        direct = _usable(self.estimated_bytes)
        if direct is not None:
            return direct
        rows = self.rows
        width = _usable(self.row_width)
        if rows is not None and width is not None:
            return rows * width
        return None

    @property
    def has_data(self) -> bool:
        return self.rows is not None or self.volume is not None


# =============================================================================
# Resource descriptor
# =============================================================================


@dataclass
class ResourceDescriptor:
    """
    Mutable resource settings of a node.

    ``parallelism`` stays ``None`` until the commit step writes it.
    """

    parallelism: int | None = None
    max_parallelism: int | None = None

    def __post_init__(self) -> None:
        if self.max_parallelism is not None and self.max_parallelism < 1:
            raise ValueError(
                f"max_parallelism must be positive, got {self.max_parallelism}"
            )

    def get_parallelism(self) -> int | None:
        return self.parallelism

    def set_parallelism(self, value: int) -> None:
        self.parallelism = value

    def get_max_parallelism(self) -> int | None:
        return self.max_parallelism


# =============================================================================
# OperatorNode
# =============================================================================


@dataclass(eq=False)
class OperatorNode:
    """
    A vertex of the execution plan DAG.

    Fields:
        node_id: Stable arena index, assigned by PlanGraph
        name: Display name (e.g. "scan(orders)")
        kind: Source, plain operator or sink wrapper
        resource: Mutable parallelism settings
        statistics: Optional planner estimates
        fixed_partitions: Externally bounded partition count, if any
        attributes: Free-form planner metadata, carried but not interpreted
    """

    node_id: int
    name: str
    kind: NodeKind = NodeKind.OPERATOR
    resource: ResourceDescriptor = field(default_factory=ResourceDescriptor)
    statistics: NodeStatistics | None = None
    fixed_partitions: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sink(self) -> bool:
        return self.kind == NodeKind.SINK

    @property
    def is_source(self) -> bool:
        return self.kind == NodeKind.SOURCE

    @property
    def max_parallelism(self) -> int | None:
        return self.resource.max_parallelism

    @property
    def parallelism(self) -> int | None:
        return self.resource.parallelism

    def declared_parallelism(self) -> int | None:
        """
        Parallelism mandated by the physical realization of this node.

        Returns the external partition bound for partition-fixed sources and
        ``None`` for everything else.
        """
        return self.fixed_partitions

    def __hash__(self) -> int:
        return hash(self.node_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OperatorNode):
            return NotImplemented
        return self.node_id == other.node_id

    def __repr__(self) -> str:
        parts = [f"OperatorNode({self.node_id}, {self.name!r}"]
        if self.kind != NodeKind.OPERATOR:
            parts.append(f", kind={self.kind.value}")
        if self.fixed_partitions is not None:
            parts.append(f", fixed={self.fixed_partitions}")
        if self.resource.parallelism is not None:
            parts.append(f", parallelism={self.resource.parallelism}")
        parts.append(")")
        return "".join(parts)


# =============================================================================
# Edge
# =============================================================================


@dataclass(frozen=True)
class Edge:
    """Directed producer -> consumer relationship tagged with an exchange mode."""

    source: int
    target: int
    mode: ExchangeMode
    ordinal: int = 0  # position among the consumer's inputs

    @property
    def is_coupled(self) -> bool:
        return self.mode.is_coupled

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "mode": self.mode.value,
        }
