"""
Commit: the single write-back of resolved parallelism into node resources.

Everything is checked before anything is written, so a bad hand-off from
the earlier steps cannot leave the plan half-assigned.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from stageplan.exceptions import CommitInvariantError
from stageplan.graph.node import OperatorNode
from stageplan.parallelism.stages import ShuffleStage

logger = logging.getLogger(__name__)


class Committer:
    """Writes per-stage values into every member's ResourceDescriptor."""

    def commit(
        self,
        node_to_stage: Mapping[int, ShuffleStage],
        resolved: Mapping[ShuffleStage, int],
        nodes: Iterable[OperatorNode],
    ) -> None:
        """
        Raises:
            CommitInvariantError: If a node has no stage or its stage has
                no resolved value. Nothing is written in that case.
        """
        writes: list[tuple[OperatorNode, int]] = []

        for node in nodes:
            stage = node_to_stage.get(node.node_id)
            if stage is None:
                raise CommitInvariantError(
                    f"Node {node.node_id} ({node.name}) has no shuffle stage",
                    node_id=node.node_id,
                )
            value = resolved.get(stage)
            if value is None:
                raise CommitInvariantError(
                    f"Stage {stage.stage_id} of node {node.node_id} was never resolved",
                    node_id=node.node_id,
                )
            if value < 1:
                raise CommitInvariantError(
                    f"Stage {stage.stage_id} resolved to non-positive {value}",
                    node_id=node.node_id,
                )
            writes.append((node, value))

        for node, value in writes:
            node.resource.set_parallelism(value)

        logger.debug("Committed parallelism for %d nodes", len(writes))
