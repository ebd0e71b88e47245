"""
Package-level exception hierarchy for stageplan.

All exceptions inherit from StagePlanError, enabling:
- Catching all stageplan errors with a single except clause
- Rich context fields for debugging (node ids, conflicting values, config keys)
- Structured serialization via to_dict() for JSON error output

Hierarchy:
    StagePlanError
    ├── ParallelismError          – Errors while assigning parallelism
    │   ├── ConstraintConflict    – Two fixed requirements disagree
    │   ├── InvalidParallelism    – A fixed or derived value is out of range
    │   └── CommitInvariantError  – Commit precondition violated
    ├── PlanGraphError            – Structural problems in the plan graph
    │   ├── UnknownNodeError      – Reference to a node id not in the graph
    │   └── CycleDetectedError    – Reachable subgraph contains a cycle
    ├── ConfigurationError        – Invalid configuration
    └── PlanLoadError             – Plan document cannot be loaded
"""

from __future__ import annotations

from typing import Any


class StagePlanError(Exception):
    """
    Base exception for all stageplan errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Parallelism Errors ───────────────────────────────────────────────────


class ParallelismError(StagePlanError):
    """Errors raised by the parallelism assignment pass."""
    pass


class ConstraintConflict(ParallelismError):
    """
    Two fixed-parallelism requirements disagree for nodes that must share a value.

    Raised both while propagating constraints along forward edges and while
    merging shuffle stages.

    Attributes:
        node_id: The node where the conflict surfaced.
        first_value: The value already assigned.
        first_source: Node id the first value originated from.
        second_value: The value that disagreed.
        second_source: Node id the second value originated from.
    """

    def __init__(
        self,
        node_id: int,
        first_value: int,
        first_source: int,
        second_value: int,
        second_source: int,
        detail: str | None = None,
    ) -> None:
        self.node_id = node_id
        self.first_value = first_value
        self.first_source = first_source
        self.second_value = second_value
        self.second_source = second_source

        message = (
            f"Conflicting fixed parallelism at node {node_id}: "
            f"{first_value} (from node {first_source}) vs "
            f"{second_value} (from node {second_source})"
        )
        if detail:
            message += f" [{detail}]"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "node_id": self.node_id,
                "first_value": self.first_value,
                "first_source": self.first_source,
                "second_value": self.second_value,
                "second_source": self.second_source,
            }
        )
        return result


class InvalidParallelism(ParallelismError):
    """
    A fixed or derived parallelism falls outside the permitted range.

    Attributes:
        value: The offending value.
        node_id: Node the value belongs to (if known).
        upper_bound: The bound that was violated (if any).
    """

    def __init__(
        self,
        message: str,
        value: Any,
        node_id: int | None = None,
        upper_bound: int | None = None,
    ) -> None:
        self.value = value
        self.node_id = node_id
        self.upper_bound = upper_bound
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["value"] = self.value
        result["node_id"] = self.node_id
        result["upper_bound"] = self.upper_bound
        return result


class CommitInvariantError(ParallelismError):
    """
    The committer was handed an incomplete resolution.

    This indicates a bug in the pass itself, never bad user input.
    """

    def __init__(self, message: str, node_id: int | None = None) -> None:
        self.node_id = node_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["node_id"] = self.node_id
        return result


# ── Graph Errors ─────────────────────────────────────────────────────────


class PlanGraphError(StagePlanError):
    """Structural problems in a plan graph."""
    pass


class UnknownNodeError(PlanGraphError):
    """Raised when a node id is not part of the graph."""

    def __init__(self, node_id: int) -> None:
        self.node_id = node_id
        super().__init__(f"Unknown node id: {node_id}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["node_id"] = self.node_id
        return result


class CycleDetectedError(PlanGraphError):
    """Raised when a cycle is detected in the plan graph."""

    def __init__(self, cycle: list[int]) -> None:
        self.cycle = cycle
        super().__init__(
            f"Cycle detected in plan graph: {' -> '.join(str(n) for n in cycle)}"
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["cycle"] = list(self.cycle)
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(StagePlanError):
    """
    Error in parallelism configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Load Errors ──────────────────────────────────────────────────────────


class PlanLoadError(StagePlanError):
    """
    Failed to load a plan document.

    Attributes:
        detail: Technical details for debugging (optional).
        source: Where the error occurred (e.g., "validation", "decode").
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        result["source"] = self.source
        return result
