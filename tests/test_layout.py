"""
Layout Engine Tests
===================

Covers the four layout stages (seed, layering, rings, relaxation) and the
guarantees callers rely on:
1. every distinct input id gets exactly one finite position
2. positions fed back in are kept
3. the ``main`` node is centred and never pushed
4. a seeded generator gives reproducible output
"""

import math
import random

import pytest
from pydantic import ValidationError

from chaingraph.layout import (
    DISCONNECTED_LAYERS,
    ITERATIONS,
    MIN_SEPARATION,
    SEPARATION_TOLERANCE,
    GraphLayoutEngine,
    LayoutPosition,
    build_adjacency,
    compute_graph_layout,
    compute_layers,
    coerce_position,
    relax,
    resolve_viewport,
    ring_radius,
    scatter_in_disk,
)
from chaingraph.models import Viewport

from conftest import make_edge, make_node


def _assert_separated(positions, min_distance=MIN_SEPARATION - SEPARATION_TOLERANCE):
    ids = list(positions)
    for i, a in enumerate(ids):
        for b in ids[i + 1:]:
            assert positions[a].distance_to(positions[b]) >= min_distance - 1e-6, (a, b)


class TestInputHandling:

    def test_empty_input_gives_empty_result(self, rng):
        engine = GraphLayoutEngine()
        assert engine.layout([], [], rng=rng) == {}

        report = engine.run([], [make_edge("x", "y")], rng=rng)
        assert report.positions == {}
        assert report.root_id is None

    def test_none_nodes_is_a_type_error(self):
        with pytest.raises(TypeError):
            GraphLayoutEngine().layout(None, [])

    def test_every_id_exactly_once(self, rng):
        nodes = [
            make_node("root", "main"),
            make_node("a"),
            make_node("a", "cex"),
            make_node("b"),
        ]
        edges = [
            make_edge("root", "a"),
            make_edge("root", "ghost"),
            make_edge("ghost", "b"),
            make_edge("b", "b"),
        ]
        positions = GraphLayoutEngine().layout(nodes, edges, rng=rng)

        assert list(positions) == ["root", "a", "b"]
        for pos in positions.values():
            assert math.isfinite(pos.x) and math.isfinite(pos.y)

    def test_dangling_edges_are_inert(self, rng):
        nodes = [make_node("root", "main"), make_node("a")]
        edges = [make_edge("root", "nowhere"), make_edge("elsewhere", "a")]

        report = GraphLayoutEngine().run(nodes, edges, rng=rng)

        assert set(report.positions) == {"root", "a"}
        # "a" is only reachable through a missing node
        assert report.layers["a"] in DISCONNECTED_LAYERS

    def test_edges_none_is_tolerated(self, rng):
        positions = GraphLayoutEngine().layout([make_node("root", "main")], None, rng=rng)
        assert positions["root"].x == 400
        assert positions["root"].y == 300

    def test_nodes_are_not_mutated(self, rng, star_graph):
        nodes, edges = star_graph
        GraphLayoutEngine().layout(nodes, edges, rng=rng)

        assert all(node.x is None and node.y is None for node in nodes)
        with pytest.raises(ValidationError):
            nodes[0].x = 1.0

    def test_previous_positions_are_not_aliased(self, rng, star_graph):
        nodes, edges = star_graph
        previous = {"a": LayoutPosition(x=10.0, y=10.0)}

        positions = GraphLayoutEngine().layout(nodes, edges, previous_positions=previous, rng=rng)
        positions["a"].x = 999.0

        assert previous["a"].x == 10.0

    def test_unknown_previous_ids_are_ignored(self, rng, star_graph):
        nodes, edges = star_graph
        previous = {"gone": (1.0, 2.0), "a": (500.0, 100.0)}

        positions = GraphLayoutEngine().layout(nodes, edges, previous_positions=previous, rng=rng)

        assert "gone" not in positions
        assert positions["a"].x == 500.0
        assert positions["a"].y == 100.0


class TestViewport:

    @pytest.mark.parametrize("viewport", [
        None,
        Viewport(),
        Viewport(width=None, height=None),
        Viewport(width=0, height=-5),
        {"width": float("nan")},
        (0, 0),
    ])
    def test_unusable_viewport_falls_back_to_default(self, viewport):
        assert resolve_viewport(viewport) == (800.0, 600.0)

    def test_tuple_and_mapping_viewports(self):
        assert resolve_viewport((1000, 500)) == (1000.0, 500.0)
        assert resolve_viewport({"width": 300, "height": 200}) == (300.0, 200.0)

    def test_root_goes_to_viewport_centre(self, rng, star_graph):
        nodes, edges = star_graph
        positions = GraphLayoutEngine().layout(nodes, edges, (1000, 1000), rng=rng)

        assert positions["root"].x == 500.0
        assert positions["root"].y == 500.0


class TestLayering:

    def test_bfs_layers_along_a_path(self, rng):
        nodes = [make_node(n, "main" if n == "root" else "alt_wallet") for n in ("root", "a", "b", "c")]
        edges = [make_edge("root", "a"), make_edge("b", "a"), make_edge("b", "c")]

        report = GraphLayoutEngine().run(nodes, edges, rng=rng)

        assert report.root_id == "root"
        assert report.layers == {"root": 0, "a": 1, "b": 2, "c": 3}

    def test_edges_are_undirected(self, rng):
        adjacency = build_adjacency(["root", "a"], [make_edge("a", "root")])
        layers = compute_layers(adjacency, "root", rng)
        assert layers["a"] == 1

    def test_disconnected_node_gets_random_layer(self, rng):
        nodes = [make_node("root", "main"), make_node("orphan")]

        report = GraphLayoutEngine().run(nodes, [], rng=rng)

        assert report.layers["orphan"] in DISCONNECTED_LAYERS
        assert report.layers["orphan"] != 0
        orphan = report.positions["orphan"]
        assert math.isfinite(orphan.x) and math.isfinite(orphan.y)
        # Every orphan ring is at least 0.95 * 0.25 * 600 from the centre
        assert orphan.distance_to(report.positions["root"]) >= 142.5 - 1e-6
        assert report.converged is True
        _assert_separated(report.positions)

    def test_first_main_node_is_the_root(self, rng):
        nodes = [make_node("x"), make_node("first", "main"), make_node("second", "main")]
        report = GraphLayoutEngine().run(nodes, [], rng=rng)
        assert report.root_id == "first"

    def test_rootless_nodes_scatter_in_disk(self, rng):
        nodes = [make_node("solo", "cex")]

        report = GraphLayoutEngine().run(nodes, [], rng=rng)

        assert report.root_id is None
        assert report.layers == {}
        assert report.placed == ["solo"]
        centre = LayoutPosition(x=400.0, y=300.0)
        assert report.positions["solo"].distance_to(centre) <= 0.3 * 600

    def test_scatter_stays_inside_radius(self, rng):
        scattered = scatter_in_disk([str(i) for i in range(50)], (0.0, 0.0), 180.0, rng)
        origin = LayoutPosition(x=0.0, y=0.0)
        assert len(scattered) == 50
        assert all(pos.distance_to(origin) <= 180.0 for pos in scattered.values())


class TestRingPlacement:

    def test_ring_radius_grows_with_layer(self):
        assert ring_radius(1, 3, 800, 600) == pytest.approx(150.0)
        assert ring_radius(2, 3, 800, 600) == pytest.approx(210.0)
        assert ring_radius(-2, 3, 800, 600) == pytest.approx(210.0)

    def test_ring_radius_fits_crowded_layers(self):
        # 20 nodes need 2000 units of circumference
        assert ring_radius(1, 20, 800, 600) == pytest.approx(2000 / (2 * math.pi))

    def test_root_with_three_leaves(self, rng, star_graph):
        nodes, edges = star_graph

        report = GraphLayoutEngine().run(nodes, edges, Viewport(width=800, height=600), rng=rng)
        positions = report.positions

        root = positions["root"]
        assert (root.x, root.y) == (400.0, 300.0)
        for leaf in ("a", "b", "c"):
            assert 142.5 - 1e-6 <= positions[leaf].distance_to(root) <= 157.5 + 1e-6
        assert report.layers == {"root": 0, "a": 1, "b": 1, "c": 1}
        assert report.placed == ["root", "a", "b", "c"]
        # Ring spacing already clears the minimum separation
        assert report.converged is True
        assert report.iterations == 1
        _assert_separated(positions)

    def test_leaves_spread_around_the_ring(self, rng, star_graph):
        nodes, edges = star_graph
        positions = GraphLayoutEngine().layout(nodes, edges, rng=rng)

        root = positions["root"]
        angles = sorted(
            math.atan2(positions[leaf].y - root.y, positions[leaf].x - root.x) % (2 * math.pi)
            for leaf in ("a", "b", "c")
        )
        gaps = [angles[1] - angles[0], angles[2] - angles[1]]
        for gap in gaps:
            assert gap == pytest.approx(2 * math.pi / 3, abs=0.11)


class TestContinuity:

    def test_incremental_layout_keeps_existing_nodes(self, rng, star_graph):
        nodes, edges = star_graph
        engine = GraphLayoutEngine()
        first = engine.layout(nodes, edges, rng=rng)

        nodes = nodes + [make_node("d", "defi")]
        edges = edges + [make_edge("root", "d")]
        report = engine.run(nodes, edges, previous_positions=first, rng=rng)

        assert report.placed == ["d"]
        for node_id in ("root", "a", "b", "c"):
            assert report.positions[node_id] == first[node_id]
        assert math.isfinite(report.positions["d"].x)

    def test_new_node_is_pushed_clear_of_existing_ones(self, steady_rng, star_graph):
        nodes, edges = star_graph
        engine = GraphLayoutEngine()
        first = engine.layout(nodes, edges, rng=steady_rng)

        nodes = nodes + [make_node("d", "defi")]
        edges = edges + [make_edge("a", "d")]
        report = engine.run(nodes, edges, previous_positions=first, rng=steady_rng)

        # "d" lands 60 units behind "a" on the layer-2 ring and backs away alone
        assert report.placed == ["d"]
        assert report.converged is True
        for node_id in ("root", "a", "b", "c"):
            assert report.positions[node_id] == first[node_id]
            assert report.positions["d"].distance_to(first[node_id]) >= MIN_SEPARATION - SEPARATION_TOLERANCE
        assert report.positions["d"].y == pytest.approx(300.0)
        _assert_separated(report.positions)

    def test_stable_layout_is_a_fixed_point(self, rng, star_graph):
        nodes, edges = star_graph
        engine = GraphLayoutEngine()
        first = engine.layout(nodes, edges, rng=rng)

        second = engine.run(nodes, edges, previous_positions=first, rng=random.Random(7))

        assert second.positions == first
        assert second.placed == []
        assert second.converged is True

    def test_node_coordinates_seed_the_layout(self, rng):
        nodes = [make_node("root", "main"), make_node("a", x=100.0, y=100.0)]
        positions = GraphLayoutEngine().layout(nodes, [make_edge("root", "a")], rng=rng)
        assert (positions["a"].x, positions["a"].y) == (100.0, 100.0)

    def test_non_finite_coordinates_mean_unpositioned(self, rng):
        nodes = [make_node("root", "main"), make_node("a", x=float("nan"), y=5.0)]
        report = GraphLayoutEngine().run(nodes, [make_edge("root", "a")], rng=rng)
        assert "a" in report.placed

    def test_previous_positions_accept_several_shapes(self):
        assert coerce_position((1, 2)) == LayoutPosition(x=1.0, y=2.0)
        assert coerce_position({"x": 3, "y": 4}) == LayoutPosition(x=3.0, y=4.0)
        assert coerce_position(make_node("n", x=5.0, y=6.0)) == LayoutPosition(x=5.0, y=6.0)
        assert coerce_position({"x": float("inf"), "y": 0}) is None
        assert coerce_position(None) is None


class TestRelaxation:

    def test_root_never_moves(self, rng):
        nodes = [make_node("root", "main", x=0.0, y=0.0), make_node("a", x=10.0, y=0.0)]

        report = GraphLayoutEngine().run(nodes, [], rng=rng)

        assert (report.positions["root"].x, report.positions["root"].y) == (0.0, 0.0)
        assert report.positions["a"].x >= MIN_SEPARATION - SEPARATION_TOLERANCE
        assert report.positions["a"].y == pytest.approx(0.0)
        assert report.converged is True

    def test_coincident_nodes_are_separated(self, rng):
        nodes = [make_node("a", x=200.0, y=200.0), make_node("b", x=200.0, y=200.0)]

        report = GraphLayoutEngine().run(nodes, [], rng=rng)

        distance = report.positions["a"].distance_to(report.positions["b"])
        assert distance >= MIN_SEPARATION - SEPARATION_TOLERANCE
        assert distance == pytest.approx(MIN_SEPARATION, abs=1.0)

    def test_two_pinned_nodes_stay_put(self, rng):
        positions = {
            "m1": LayoutPosition(x=0.0, y=0.0),
            "m2": LayoutPosition(x=10.0, y=0.0),
        }
        passes, converged = relax(positions, {"m1", "m2"}, set(), rng)

        assert passes == 1
        assert converged is False
        assert positions["m2"].x == 10.0

    def test_pass_cap_is_respected(self, rng):
        # Against the pinned root the gap closes by half per pass: 10, 55, 77.5, 88.75
        nodes = [make_node("root", "main", x=0.0, y=0.0), make_node("a", x=10.0, y=0.0)]

        report = GraphLayoutEngine(iterations=3).run(nodes, [], rng=rng)

        assert report.iterations == 3
        assert report.converged is False
        assert report.positions["a"].x == pytest.approx(88.75)

    def test_large_graph_stays_within_cap(self):
        nodes = [make_node("root", "main")] + [make_node(f"n{i}") for i in range(60)]
        edges = [make_edge("root", f"n{i}") for i in range(60)]

        report = GraphLayoutEngine().run(nodes, edges, (10, 10), rng=random.Random(3))

        assert 1 <= report.iterations <= ITERATIONS
        assert len(report.positions) == 61
        assert all(math.isfinite(p.x) and math.isfinite(p.y) for p in report.positions.values())

    def test_crowded_ring_is_wide_enough(self, steady_rng):
        # 60 nodes on a ring of radius 6000 / (2 * pi): neighbours ~99.95 apart
        nodes = [make_node("root", "main")] + [make_node(f"n{i}") for i in range(60)]
        edges = [make_edge("root", f"n{i}") for i in range(60)]

        report = GraphLayoutEngine().run(nodes, edges, (10, 10), rng=steady_rng)

        assert report.converged is True
        assert report.iterations == 1
        _assert_separated(report.positions)

    def test_overlapping_layers_are_pushed_apart(self, steady_rng):
        # Layer 1 at radius 150 and layer 2 at 210 line up at angle 0
        nodes = [make_node("root", "main"), make_node("b"), make_node("c")]
        edges = [make_edge("root", "b"), make_edge("b", "c")]

        report = GraphLayoutEngine().run(nodes, edges, rng=steady_rng)

        assert report.converged is True
        assert report.iterations == 2
        assert report.positions["b"].x == pytest.approx(530.0)
        assert report.positions["c"].x == pytest.approx(630.0)
        _assert_separated(report.positions)


class TestDeterminism:

    def test_same_seed_same_layout(self, star_graph):
        nodes, edges = star_graph
        nodes = nodes + [make_node("orphan")]

        first = GraphLayoutEngine().layout(nodes, edges, rng=random.Random(5))
        second = GraphLayoutEngine().layout(nodes, edges, rng=random.Random(5))

        assert first == second

    def test_engine_seed(self, star_graph):
        nodes, edges = star_graph
        engine = GraphLayoutEngine(seed=99)
        assert engine.layout(nodes, edges) == engine.layout(nodes, edges)

    def test_module_level_helper(self, star_graph):
        nodes, edges = star_graph
        positions = compute_graph_layout(nodes, edges, rng=random.Random(1))
        assert list(positions) == ["root", "a", "b", "c"]
