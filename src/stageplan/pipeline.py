"""
DAG processor chain.

Plan compilation runs an ordered list of passes over the plan DAG. Each
pass receives the current root list plus a shared context and returns the
roots for the next pass. The parallelism pass is one of them.

Usage:
    chain = ProcessorChain([ParallelismProcessor()])
    roots = chain.run(roots, ProcessContext(graph=graph, config=config))
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

from stageplan.config import ParallelismConfig
from stageplan.graph.node import OperatorNode
from stageplan.graph.plan import PlanGraph

logger = logging.getLogger(__name__)


@dataclass
class ProcessContext:
    """
    What a pass may consult besides the roots.

    Fields:
        graph: The plan arena the roots belong to
        config: Global parallelism settings
        environment_parallelism: Parallelism of the execution environment,
            used when no default parallelism is configured
        attributes: Free-form values passes may hand to later passes
    """

    graph: PlanGraph
    config: ParallelismConfig = field(default_factory=ParallelismConfig)
    environment_parallelism: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DAGProcessor(Protocol):
    """A single DAG-transforming pass."""

    def process(
        self,
        roots: list[OperatorNode],
        context: ProcessContext,
    ) -> list[OperatorNode]:
        ...


class ProcessorChain:
    """Runs processors in order, feeding each one the previous output."""

    def __init__(self, processors: Sequence[DAGProcessor]) -> None:
        self._processors = list(processors)

    @property
    def processors(self) -> list[DAGProcessor]:
        return list(self._processors)

    def run(
        self,
        roots: list[OperatorNode],
        context: ProcessContext,
    ) -> list[OperatorNode]:
        for processor in self._processors:
            start = time.perf_counter()
            roots = processor.process(roots, context)
            logger.debug(
                "%s finished in %.2fms",
                type(processor).__name__,
                (time.perf_counter() - start) * 1000,
            )
        return roots
