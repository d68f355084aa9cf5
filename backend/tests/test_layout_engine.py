"""
Tests for the LayoutEngine.

Covers hierarchical layering and crossing reduction, grid packing,
force-directed determinism/convergence/cancellation and the overlap
guarantee shared by all algorithms.
"""

import threading

import pytest

from rlcompiler.config import LayoutConfig
from rlcompiler.errors import CycleError, InvalidGraphError
from rlcompiler.models.graph import ComponentNode, RelationshipEdge
from rlcompiler.services.layout_engine import LayoutEngine


def _node(node_id: str, layer=None):
    return ComponentNode(id=node_id, type="service", label=node_id.upper(), layer=layer)


def _edge(source: str, target: str, edge_type: str = "calls"):
    return RelationshipEdge(source=source, target=target, type=edge_type)


def _tree():
    nodes = [_node(n) for n in ("a", "b", "c", "d", "e")]
    edges = [_edge("a", "b"), _edge("a", "c"), _edge("b", "d"), _edge("c", "e")]
    return nodes, edges


def _assert_no_overlap(result, config: LayoutConfig):
    ids = list(result.positions)
    for i, a in enumerate(ids):
        for b in ids[i + 1:]:
            pa, pb = result.positions[a], result.positions[b]
            gap_x = abs(pa.x - pb.x) - config.node_width
            gap_y = abs(pa.y - pb.y) - config.node_height
            assert max(gap_x, gap_y) >= config.min_distance - 1e-6, f"{a} overlaps {b}"


class TestHierarchical:

    def test_three_layers(self):
        """Five nodes on three layers stack top-down by layer."""
        nodes, edges = _tree()
        config = LayoutConfig()
        result = LayoutEngine(config).layout(nodes, edges, "hierarchical")

        ys = {nid: pos.y for nid, pos in result.positions.items()}
        assert ys["a"] == 0
        assert ys["b"] == ys["c"] == 150
        assert ys["d"] == ys["e"] == 300
        assert result.status == "converged"
        _assert_no_overlap(result, config)

    def test_layers_recorded_on_nodes(self):
        nodes, edges = _tree()
        result = LayoutEngine().layout(nodes, edges)
        layers = {n.id: n.layer for n in result.nodes}
        assert layers == {"a": 0, "b": 1, "c": 1, "d": 2, "e": 2}

    def test_explicit_layers(self):
        nodes = [_node("a"), _node("b"), _node("c")]
        result = LayoutEngine().layout(nodes, [], layers={"a": 2, "b": 0, "c": 1})
        assert result.positions["a"].y > result.positions["c"].y > result.positions["b"].y

    def test_barycenter_untangles_crossing(self):
        """Children listed in the opposite order to their parents get swapped."""
        nodes = [_node("p1"), _node("p2"), _node("c2"), _node("c1")]
        edges = [_edge("p1", "c1"), _edge("p2", "c2")]
        result = LayoutEngine().layout(nodes, edges)

        pos = result.positions
        assert pos["p1"].x < pos["p2"].x
        assert pos["c1"].x < pos["c2"].x

    def test_cycle_rejected(self):
        nodes = [_node("a"), _node("b"), _node("c")]
        edges = [_edge("a", "b"), _edge("b", "c"), _edge("c", "a")]
        with pytest.raises(CycleError) as exc_info:
            LayoutEngine().layout(nodes, edges, "hierarchical")
        assert sorted(exc_info.value.cycle) == ["a", "b", "c"]
        assert exc_info.value.scope == "relationship graph"

    def test_orthogonal_routes(self):
        nodes, edges = _tree()
        result = LayoutEngine().layout(nodes, edges)
        route = result.routes["a->b:calls"]
        assert len(route) == 4
        assert route[0].x == route[1].x
        assert route[1].y == route[2].y
        assert route[2].x == route[3].x


class TestGrid:

    def test_row_major_square(self):
        nodes = [_node(f"n{i}") for i in range(5)]
        result = LayoutEngine().layout(nodes, [], "grid")

        pos = result.positions
        # ceil(sqrt(5)) == 3 columns
        assert (pos["n0"].x, pos["n0"].y) == (0, 0)
        assert (pos["n2"].x, pos["n2"].y) == (400, 0)
        assert (pos["n3"].x, pos["n3"].y) == (0, 150)
        assert result.iterations == 0

    def test_configured_columns(self):
        nodes = [_node(f"n{i}") for i in range(4)]
        result = LayoutEngine(LayoutConfig(columns=4)).layout(nodes, [], "grid")
        assert {p.y for p in result.positions.values()} == {0}


class TestForceDirected:

    def test_deterministic(self):
        nodes, edges = _tree()
        first = LayoutEngine().layout(nodes, edges, "force_directed")
        second = LayoutEngine().layout(nodes, edges, "force_directed")
        assert first.model_dump() == second.model_dump()

    def test_no_overlap(self):
        nodes, edges = _tree()
        config = LayoutConfig()
        result = LayoutEngine(config).layout(nodes, edges, "force_directed")
        _assert_no_overlap(result, config)

    def test_max_iterations_reached(self):
        nodes, edges = _tree()
        config = LayoutConfig(max_iterations=3, convergence_threshold=1e-9)
        result = LayoutEngine(config).layout(nodes, edges, "force_directed")

        assert result.status == "max_iter_reached"
        assert result.iterations == 3
        assert "MAX_ITER_REACHED" in result.state_trace
        assert len(result.positions) == 5

    def test_cancellation(self):
        nodes, edges = _tree()
        cancel = threading.Event()
        cancel.set()
        result = LayoutEngine().layout(nodes, edges, "force_directed", cancel=cancel)

        assert result.status == "cancelled"
        assert result.iterations == 0
        assert result.state_trace[-2:] == ["CANCELLED", "FINALIZED"]
        assert set(result.positions) == {"a", "b", "c", "d", "e"}


class TestValidation:

    def test_state_trace(self):
        nodes, edges = _tree()
        result = LayoutEngine().layout(nodes, edges)
        assert result.state_trace == [
            "INPUT_GRAPH", "ALGORITHM_SELECTED", "POSITIONS_COMPUTED", "CONVERGED", "FINALIZED",
        ]

    def test_dangling_edge(self):
        with pytest.raises(InvalidGraphError, match="unknown target node 'ghost'"):
            LayoutEngine().layout([_node("a")], [_edge("a", "ghost")])

    def test_duplicate_node(self):
        with pytest.raises(InvalidGraphError, match="Duplicate node ID 'a'"):
            LayoutEngine().layout([_node("a"), _node("a")], [])

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError, match="Unknown layout algorithm"):
            LayoutEngine().layout([_node("a")], [], "circular")

    def test_empty_graph(self):
        result = LayoutEngine().layout([], [])
        assert result.positions == {}
        assert result.bounding_box.width == 0
