"""
Tests for the plan graph arena.

These tests verify:
- Node and edge construction (ids, ordinals, insertion order)
- Deterministic reachability from roots
- Cycle detection
- Sink stripping
- Exchange modes and node statistics
"""

from __future__ import annotations

import math

import pytest

from stageplan.exceptions import CycleDetectedError, PlanGraphError, UnknownNodeError
from stageplan.graph import (
    ExchangeMode,
    NodeKind,
    NodeStatistics,
    PlanGraph,
    ResourceDescriptor,
    is_coupled,
)


def diamond() -> tuple[PlanGraph, list]:
    """src feeds a and b, both feed join."""
    graph = PlanGraph()
    src = graph.add_node("src", NodeKind.SOURCE)
    a = graph.add_node("a")
    b = graph.add_node("b")
    join = graph.add_node("join")
    graph.connect(src, a, ExchangeMode.FORWARD)
    graph.connect(src, b, ExchangeMode.HASH)
    graph.connect(a, join, ExchangeMode.FORWARD)
    graph.connect(b, join, ExchangeMode.HASH)
    return graph, [src, a, b, join]


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    """Node ids, edges and access."""

    def test_node_ids_are_arena_indices(self) -> None:
        graph, nodes = diamond()

        assert [n.node_id for n in nodes] == [0, 1, 2, 3]
        assert graph.node(2) is nodes[2]
        assert len(graph) == 4

    def test_edges_keep_input_ordinals(self) -> None:
        graph, (src, a, b, join) = diamond()

        inputs = graph.inputs(join)
        assert [e.source for e in inputs] == [a.node_id, b.node_id]
        assert [e.ordinal for e in inputs] == [0, 1]
        assert [e.mode for e in inputs] == [ExchangeMode.FORWARD, ExchangeMode.HASH]

    def test_outputs_in_insertion_order(self) -> None:
        graph, (src, a, b, join) = diamond()

        assert [e.target for e in graph.outputs(src)] == [a.node_id, b.node_id]
        assert graph.input_nodes(join) == [a, b]

    def test_self_loop_rejected(self) -> None:
        graph = PlanGraph()
        node = graph.add_node("x")

        with pytest.raises(PlanGraphError):
            graph.connect(node, node)

    def test_unknown_node_id(self) -> None:
        graph, _ = diamond()

        with pytest.raises(UnknownNodeError) as exc_info:
            graph.node(42)
        assert exc_info.value.node_id == 42

    def test_node_from_other_graph_rejected(self) -> None:
        graph, _ = diamond()
        other = PlanGraph()
        foreign = other.add_node("foreign")

        with pytest.raises(UnknownNodeError):
            graph.connect(foreign, 0)

    def test_contains(self) -> None:
        graph, nodes = diamond()

        assert nodes[0] in graph
        assert 3 in graph
        assert 4 not in graph

    def test_to_dict(self) -> None:
        graph, _ = diamond()
        data = graph.to_dict()

        assert len(data["nodes"]) == 4
        assert data["edges"][0] == {"source": 0, "target": 1, "mode": "forward"}


# =============================================================================
# Traversal
# =============================================================================


class TestReachable:
    """Deterministic DFS from roots through inputs."""

    def test_preorder_first_input_first(self) -> None:
        graph, (src, a, b, join) = diamond()

        assert graph.reachable([join]) == [join, a, src, b]

    def test_each_node_once(self) -> None:
        graph, (src, a, b, join) = diamond()

        order = graph.reachable([join, a, src])
        assert len(order) == 4
        assert len({n.node_id for n in order}) == 4

    def test_only_upstream_nodes(self) -> None:
        graph, (src, a, b, join) = diamond()

        assert graph.reachable([a]) == [a, src]

    def test_same_order_every_time(self) -> None:
        graph, (_, _, _, join) = diamond()

        first = [n.node_id for n in graph.reachable([join])]
        second = [n.node_id for n in graph.reachable([join])]
        assert first == second


class TestCycles:
    """Cycle detection on the reachable subgraph."""

    def test_acyclic_graph(self) -> None:
        graph, (_, _, _, join) = diamond()

        assert graph.find_cycle([join]) is None
        graph.validate_acyclic([join])

    def test_two_node_cycle(self) -> None:
        graph = PlanGraph()
        a = graph.add_node("a")
        b = graph.add_node("b")
        graph.connect(a, b)
        graph.connect(b, a)

        cycle = graph.find_cycle([a])
        assert cycle is not None
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {a.node_id, b.node_id}

        with pytest.raises(CycleDetectedError) as exc_info:
            graph.validate_acyclic([a])
        assert exc_info.value.to_dict()["cycle"] == exc_info.value.cycle

    def test_deep_chain_is_acyclic(self) -> None:
        graph = PlanGraph()
        previous = graph.add_node("n0", NodeKind.SOURCE)
        for i in range(1, 5000):
            node = graph.add_node(f"n{i}")
            graph.connect(previous, node, ExchangeMode.FORWARD)
            previous = node

        assert graph.find_cycle([previous]) is None
        graph.validate_acyclic([previous])

    def test_cycle_at_the_bottom_of_a_deep_chain(self) -> None:
        graph = PlanGraph()
        a = graph.add_node("a")
        b = graph.add_node("b")
        graph.connect(a, b)
        graph.connect(b, a)
        previous = b
        for i in range(5000):
            node = graph.add_node(f"n{i}")
            graph.connect(previous, node)
            previous = node

        cycle = graph.find_cycle([previous])

        assert cycle is not None
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {a.node_id, b.node_id}

    def test_cycle_outside_reachable_part_ignored(self) -> None:
        graph = PlanGraph()
        a = graph.add_node("a")
        b = graph.add_node("b")
        c = graph.add_node("c")
        graph.connect(a, b)
        graph.connect(b, a)

        graph.validate_acyclic([c])


class TestStripSinks:
    """Sink wrappers are replaced by their input."""

    def test_sink_replaced_by_first_input(self) -> None:
        graph = PlanGraph()
        calc = graph.add_node("calc")
        sink = graph.add_node("sink", NodeKind.SINK)
        graph.connect(calc, sink)

        assert graph.strip_sinks([sink]) == [calc]

    def test_non_sink_roots_kept(self) -> None:
        graph, (_, a, _, join) = diamond()

        assert graph.strip_sinks([join, a]) == [join, a]

    def test_sink_without_input(self) -> None:
        graph = PlanGraph()
        sink = graph.add_node("sink", NodeKind.SINK)

        with pytest.raises(PlanGraphError):
            graph.strip_sinks([sink])


# =============================================================================
# Exchange modes and node metadata
# =============================================================================


class TestExchangeMode:
    """Closed exchange-mode enumeration."""

    @pytest.mark.parametrize(
        "mode,coupled",
        [
            (ExchangeMode.FORWARD, True),
            (ExchangeMode.SINGLETON, True),
            (ExchangeMode.SHUFFLE, False),
            (ExchangeMode.HASH, False),
            (ExchangeMode.BROADCAST, False),
        ],
    )
    def test_coupling(self, mode: ExchangeMode, coupled: bool) -> None:
        assert mode.is_coupled is coupled
        assert is_coupled(mode) is coupled
        assert mode.is_repartitioning is not coupled

    def test_from_string_is_case_insensitive(self) -> None:
        assert ExchangeMode.from_string("HASH") == ExchangeMode.HASH
        assert ExchangeMode.from_string(" Forward ") == ExchangeMode.FORWARD

    def test_from_string_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown exchange mode"):
            ExchangeMode.from_string("range")


class TestNodeStatistics:
    """Volume and row estimates."""

    def test_bytes_take_precedence(self) -> None:
        stats = NodeStatistics(estimated_rows=10, estimated_bytes=5000, row_width=100)
        assert stats.volume == 5000

    def test_volume_from_rows_and_width(self) -> None:
        stats = NodeStatistics(estimated_rows=1000, row_width=50)
        assert stats.volume == 50_000

    def test_rows_alone_have_no_volume(self) -> None:
        stats = NodeStatistics(estimated_rows=1000)
        assert stats.volume is None
        assert stats.rows == 1000
        assert stats.has_data

    @pytest.mark.parametrize("bad", [-1.0, math.nan, math.inf])
    def test_unusable_numbers_ignored(self, bad: float) -> None:
        stats = NodeStatistics(estimated_rows=bad, estimated_bytes=bad)
        assert stats.rows is None
        assert stats.volume is None
        assert not stats.has_data


class TestOperatorNode:
    """Resource descriptor and capability query."""

    def test_declared_parallelism(self) -> None:
        graph = PlanGraph()
        source = graph.add_node("kafka", NodeKind.SOURCE, fixed_partitions=12)
        calc = graph.add_node("calc")

        assert source.declared_parallelism() == 12
        assert calc.declared_parallelism() is None

    def test_parallelism_unset_until_written(self) -> None:
        graph = PlanGraph()
        node = graph.add_node("calc", max_parallelism=8)

        assert node.parallelism is None
        assert node.resource.get_max_parallelism() == 8
        node.resource.set_parallelism(3)
        assert node.resource.get_parallelism() == 3

    def test_non_positive_max_parallelism_rejected(self) -> None:
        with pytest.raises(ValueError):
            ResourceDescriptor(max_parallelism=0)
