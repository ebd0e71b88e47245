"""
Plan graph: operator nodes, exchange-tagged edges and the arena that owns them.

- **exchange.py**: the closed ExchangeMode enumeration
- **node.py**: OperatorNode, Edge, ResourceDescriptor, NodeStatistics
- **plan.py**: PlanGraph arena with deterministic traversal
"""

from stageplan.graph.exchange import ExchangeMode, is_coupled
from stageplan.graph.node import (
    Edge,
    NodeKind,
    NodeStatistics,
    OperatorNode,
    ResourceDescriptor,
)
from stageplan.graph.plan import PlanGraph

__all__ = [
    "ExchangeMode",
    "is_coupled",
    "Edge",
    "NodeKind",
    "NodeStatistics",
    "OperatorNode",
    "ResourceDescriptor",
    "PlanGraph",
]
