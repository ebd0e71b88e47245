"""Plan document loading module."""

from stageplan.loader.loader import LoadedPlan, build_graph, load_plan
from stageplan.loader.models import EdgeSpec, NodeSpec, PlanDocument, StatisticsSpec

__all__ = [
    "LoadedPlan",
    "build_graph",
    "load_plan",
    "EdgeSpec",
    "NodeSpec",
    "PlanDocument",
    "StatisticsSpec",
]
