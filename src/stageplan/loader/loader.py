"""
Loader for plan documents (JSON or YAML).

This module handles:
- Loading plan documents from files, strings or already-parsed dicts
- Validating them against the PlanDocument model
- Building the PlanGraph arena and the ordered root list

Error handling philosophy: fail fast with clear messages. Every failure is
a PlanLoadError whose ``source`` says which step rejected the input.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from stageplan.exceptions import PlanGraphError, PlanLoadError
from stageplan.graph.node import OperatorNode
from stageplan.graph.plan import PlanGraph
from stageplan.loader.models import PlanDocument

_YAML_SUFFIXES = (".yaml", ".yml")


@dataclass
class LoadedPlan:
    """A plan graph together with its roots and document-id mapping."""

    graph: PlanGraph
    roots: list[OperatorNode]
    node_ids: dict[int, int]  # document id -> arena id
    document_ids: dict[int, int] = field(init=False, repr=False)  # arena id -> document id

    def __post_init__(self) -> None:
        self.document_ids = {arena_id: doc_id for doc_id, arena_id in self.node_ids.items()}

    def node(self, document_id: int) -> OperatorNode:
        """Look a node up by the id it had in the document."""
        return self.graph.node(self.node_ids[document_id])

    def document_id(self, node: OperatorNode) -> int:
        return self.document_ids[node.node_id]


def load_plan(source: str | Path | dict[str, Any]) -> LoadedPlan:
    """
    Load a plan document into a PlanGraph.

    Accepts:
    - Path: JSON or YAML file (by suffix)
    - str: JSON text if it starts with "{", else a file path
    - dict: an already-parsed document

    Raises:
        PlanLoadError: If the input cannot be read, decoded or validated
    """
    data = _load_source(source)
    document = _validate(data)
    return build_graph(document)


def build_graph(document: PlanDocument) -> LoadedPlan:
    """Build the arena from a validated document, preserving node order."""
    graph = PlanGraph()
    node_ids: dict[int, int] = {}

    for spec in document.nodes:
        node = graph.add_node(
            spec.name or f"node-{spec.id}",
            spec.kind,
            fixed_partitions=spec.fixed_partitions,
            max_parallelism=spec.max_parallelism,
            statistics=spec.statistics.to_statistics() if spec.statistics else None,
            attributes=spec.attributes,
        )
        node_ids[spec.id] = node.node_id

    for edge in document.edges:
        try:
            graph.connect(node_ids[edge.source], node_ids[edge.target], edge.mode)
        except PlanGraphError as e:
            raise PlanLoadError(
                "Invalid edge in plan document",
                detail=e.message,
                source="structure",
            ) from e

    roots = [graph.node(node_ids[r]) for r in document.default_roots()]
    if not roots:
        raise PlanLoadError(
            "Plan document has no roots",
            detail="Every node has a consumer; pass 'roots' explicitly",
            source="structure",
        )

    return LoadedPlan(graph=graph, roots=roots, node_ids=node_ids)


def _load_source(source: str | Path | dict[str, Any]) -> Any:
    if isinstance(source, dict):
        return source

    if isinstance(source, Path):
        return _load_file(source)

    if isinstance(source, str):
        stripped = source.strip()
        if stripped.startswith("{"):
            return _decode(stripped, yaml_text=False)
        return _load_file(Path(source))

    raise PlanLoadError(
        f"Unsupported source type: {type(source).__name__}",
        detail="Expected file path, JSON string or dict",
        source="type_check",
    )


def _load_file(path: Path) -> Any:
    if not path.exists():
        raise PlanLoadError(f"File not found: {path}", source="file_read")
    if not path.is_file():
        raise PlanLoadError(f"Path is not a file: {path}", source="file_read")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PlanLoadError(
            f"Cannot read file: {path}",
            detail=str(e),
            source="file_read",
        ) from e

    if not content.strip():
        raise PlanLoadError(f"File is empty: {path}", source="file_read")

    return _decode(content, yaml_text=path.suffix.lower() in _YAML_SUFFIXES)


def _decode(content: str, *, yaml_text: bool) -> Any:
    if yaml_text:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise PlanLoadError(
                "Invalid YAML format",
                detail=str(e),
                source="decode",
            ) from e

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise PlanLoadError(
            "Invalid JSON format",
            detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
            source="decode",
        ) from e


def _validate(data: Any) -> PlanDocument:
    if not isinstance(data, dict):
        raise PlanLoadError(
            f"Expected a mapping at the top level, got {type(data).__name__}",
            source="structure",
        )

    try:
        return PlanDocument.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise PlanLoadError(
            "Plan document failed validation",
            detail=f"{location}: {first.get('msg', str(e))}" if location else first.get("msg", str(e)),
            source="validation",
        ) from e
