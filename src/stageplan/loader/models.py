"""
Pydantic models for plan documents.

A plan document is a flat description of a plan DAG:

    {
      "nodes": [
        {"id": 0, "name": "scan(orders)", "kind": "source", "fixed_partitions": 4},
        {"id": 1, "name": "calc"},
        {"id": 2, "name": "agg", "max_parallelism": 32,
         "statistics": {"estimated_rows": 1e6, "row_width": 48}}
      ],
      "edges": [
        {"source": 0, "target": 1, "mode": "forward"},
        {"source": 1, "target": 2, "mode": "hash"}
      ],
      "roots": [2]
    }

Node ids in a document are labels; they need not be dense. The loader maps
them onto arena indices.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stageplan.graph.exchange import ExchangeMode
from stageplan.graph.node import NodeKind, NodeStatistics


class StatisticsSpec(BaseModel):
    """Planner estimates for a node."""

    model_config = ConfigDict(extra="ignore")

    estimated_rows: float | None = Field(default=None, description="Estimated output rows")
    estimated_bytes: float | None = Field(default=None, description="Estimated output bytes")
    row_width: int | None = Field(default=None, description="Average row width in bytes")

    def to_statistics(self) -> NodeStatistics:
        return NodeStatistics(
            estimated_rows=self.estimated_rows,
            estimated_bytes=self.estimated_bytes,
            row_width=self.row_width,
        )


class NodeSpec(BaseModel):
    """One operator node of a plan document."""

    model_config = ConfigDict(extra="forbid")

    id: int
    name: str = ""
    kind: NodeKind = NodeKind.OPERATOR
    fixed_partitions: int | None = Field(default=None, ge=1)
    max_parallelism: int | None = Field(default=None, ge=1)
    statistics: StatisticsSpec | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def _lower_kind(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class EdgeSpec(BaseModel):
    """A producer -> consumer edge of a plan document."""

    model_config = ConfigDict(extra="forbid")

    source: int
    target: int
    mode: ExchangeMode = ExchangeMode.FORWARD

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ExchangeMode.from_string(value)
        return value


class PlanDocument(BaseModel):
    """A complete plan: nodes, edges and the ordered roots."""

    model_config = ConfigDict(extra="forbid")

    nodes: list[NodeSpec] = Field(min_length=1)
    edges: list[EdgeSpec] = Field(default_factory=list)
    roots: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "PlanDocument":
        ids = [node.id for node in self.nodes]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate node ids: {duplicates}")

        known = set(ids)
        for edge in self.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in known:
                    raise ValueError(
                        f"Edge {edge.source} -> {edge.target} references unknown node {endpoint}"
                    )
        for root in self.roots:
            if root not in known:
                raise ValueError(f"Root {root} references unknown node")
        return self

    def default_roots(self) -> list[int]:
        """Roots if given, else every node without consumers (document order)."""
        if self.roots:
            return list(self.roots)
        producers = {edge.source for edge in self.edges}
        return [node.id for node in self.nodes if node.id not in producers]
