"""
Stage parallelism resolution.

Final stages keep their fixed value after a range check. Every other stage
gets a derived value:

1. ``ceil(total volume / target_volume_per_instance)`` when members carry
   volume estimates and a volume target is configured
2. ``ceil(total rows / target_rows_per_instance)`` when members carry row
   estimates and a row target is configured
3. the effective default parallelism otherwise

The candidate is clamped into ``[1, max_parallelism]`` and then under the
narrowest member ``max_parallelism``. The clamp is the only tie-break.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum, unique
from typing import Iterable

from stageplan.config import ParallelismConfig
from stageplan.exceptions import InvalidParallelism
from stageplan.graph.plan import PlanGraph
from stageplan.parallelism.stages import ShuffleStage

logger = logging.getLogger(__name__)


@unique
class DerivationSource(str, Enum):
    """Where a stage's value came from."""

    FIXED = "fixed"
    VOLUME = "volume"
    ROWS = "rows"
    DEFAULT = "default"


@dataclass(frozen=True)
class StageDecision:
    """Resolved value of one stage plus how it was reached."""

    stage: ShuffleStage
    parallelism: int
    source: DerivationSource
    candidate: int
    upper_bound: int

    @property
    def was_clamped(self) -> bool:
        return self.candidate != self.parallelism

    def to_dict(self) -> dict[str, object]:
        return {
            "stage_id": self.stage.stage_id,
            "parallelism": self.parallelism,
            "source": self.source.value,
            "candidate": self.candidate,
            "upper_bound": self.upper_bound,
        }


class StageResolver:
    """
    Picks one parallelism per shuffle stage.

    Usage:
        resolver = StageResolver(graph, config, environment_parallelism=4)
        resolved = resolver.resolve(stages)
        resolved[stage]  # int
    """

    def __init__(
        self,
        graph: PlanGraph,
        config: ParallelismConfig,
        environment_parallelism: int | None = None,
    ) -> None:
        self._graph = graph
        self._config = config
        self._default = config.effective_default(environment_parallelism)

    def resolve(self, stages: Iterable[ShuffleStage]) -> dict[ShuffleStage, int]:
        """
        Resolve every stage.

        Raises:
            InvalidParallelism: If a final stage's value is out of range
        """
        return {
            decision.stage: decision.parallelism
            for decision in self.decide(stages)
        }

    def decide(self, stages: Iterable[ShuffleStage]) -> list[StageDecision]:
        """Like resolve(), but keeps the derivation details."""
        decisions = [self._decide(stage) for stage in stages]
        for decision in decisions:
            logger.debug(
                "Stage %d -> %d (%s%s)",
                decision.stage.stage_id,
                decision.parallelism,
                decision.source.value,
                f", clamped from {decision.candidate}" if decision.was_clamped else "",
            )
        return decisions

    def _decide(self, stage: ShuffleStage) -> StageDecision:
        upper = self._upper_bound(stage)

        if stage.is_final:
            value = stage.fixed_parallelism
            self._check_final(stage, value)
            return StageDecision(stage, value, DerivationSource.FIXED, value, upper)

        candidate, source = self._candidate(stage)
        value = max(1, min(candidate, upper))
        return StageDecision(stage, value, source, candidate, upper)

    def _candidate(self, stage: ShuffleStage) -> tuple[int, DerivationSource]:
        stats = [
            self._graph.node(member).statistics for member in stage.members
        ]
        stats = [s for s in stats if s is not None]

        target_volume = self._config.target_volume_per_instance
        if target_volume is not None:
            volumes = [s.volume for s in stats if s.volume is not None]
            if volumes:
                return math.ceil(sum(volumes) / target_volume), DerivationSource.VOLUME

        target_rows = self._config.target_rows_per_instance
        if target_rows is not None:
            rows = [s.rows for s in stats if s.rows is not None]
            if rows:
                return math.ceil(sum(rows) / target_rows), DerivationSource.ROWS

        return self._default, DerivationSource.DEFAULT

    def _upper_bound(self, stage: ShuffleStage) -> int:
        upper = self._config.max_parallelism
        for member in stage.members:
            node_max = self._graph.node(member).max_parallelism
            if node_max is not None:
                upper = min(upper, node_max)
        return upper

    def _check_final(self, stage: ShuffleStage, value: int) -> None:
        if value < 1:
            raise InvalidParallelism(
                f"Stage {stage.stage_id} has non-positive fixed parallelism {value}",
                value=value,
                node_id=stage.origin,
            )
        if value > self._config.max_parallelism:
            raise InvalidParallelism(
                f"Stage {stage.stage_id} fixed parallelism {value} exceeds "
                f"max_parallelism {self._config.max_parallelism}",
                value=value,
                node_id=stage.origin,
                upper_bound=self._config.max_parallelism,
            )
        for member in stage.members:
            node_max = self._graph.node(member).max_parallelism
            if node_max is not None and value > node_max:
                raise InvalidParallelism(
                    f"Stage {stage.stage_id} fixed parallelism {value} exceeds "
                    f"max_parallelism {node_max} of node {member}",
                    value=value,
                    node_id=member,
                    upper_bound=node_max,
                )
