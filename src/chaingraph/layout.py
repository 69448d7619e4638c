"""
Radial layering layout for chaingraph.

Assigns 2D coordinates to the nodes of a transaction graph so that the
investigated address sits at the centre and everything else fans out in
rings by hop distance.

The algorithm runs four stages, always in this order:

  1. Seed      — copy positions the caller already has (a previous layout,
                 a user drag) onto the working set.
  2. Layering  — breadth-first hop distance from the ``main`` node over the
                 undirected edge set.  Without a root, unpositioned nodes
                 are scattered in a disk around the centre instead.
  3. Rings     — unpositioned nodes of each layer are spread evenly on a
                 circle whose radius grows with the layer and with the
                 number of nodes that must fit on it.
  4. Relax     — pairwise repulsion passes push apart any two nodes closer
                 than ``MIN_SEPARATION``.  There is no attraction term and no
                 velocity; this only resolves overlap.

The engine holds no state between calls.  Continuity across data refreshes
comes from the caller feeding the previous result back in as
``previous_positions``; seeded nodes are never moved by stages 2-3, and in
stage 4 they give way only to other seeded nodes and to the root.

Spacing constants (layout units):
  - Minimum separation between nodes: 100
  - Ring radius: min(width, height) * (0.15 + 0.1 * |layer|)
  - Scatter disk (no root): 30% of min(width, height)
"""

from __future__ import annotations

import logging
import math
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Union

from .models import GraphEdge, GraphNode, Viewport


logger = logging.getLogger(__name__)


# --- Layout constants ---

MIN_SEPARATION = 100.0
ITERATIONS = 15

RING_BASE_FACTOR = 0.15
RING_LAYER_FACTOR = 0.1

# Jitter so rings don't read as perfect polygons
RING_ANGLE_JITTER = 0.05    # radians either side (~3 degrees)
RING_RADIUS_JITTER = 0.05   # fraction of the radius either side

SCATTER_DISK_FACTOR = 0.3

# Layers handed to nodes the root can't reach.  Cosmetic only: they put the
# orphan at a plausible distance, nothing more.
DISCONNECTED_LAYERS = (-4, -3, -2, -1, 1, 2, 3, 4)

# Pairs within this much of MIN_SEPARATION count as separated.  Halving the
# deficit every pass never reaches it exactly.
SEPARATION_TOLERANCE = 0.5

# Below this distance two nodes are treated as coincident
COINCIDENT_DISTANCE = 1e-9


@dataclass
class LayoutPosition:
    """Computed position for a node."""
    x: float
    y: float

    def distance_to(self, other: "LayoutPosition") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass
class LayoutReport:
    """Everything a layout pass produced.

    ``positions`` is the contract output; the remaining fields describe how
    it was reached and exist for callers that log or test the layout.
    """
    positions: dict[str, LayoutPosition]
    layers: dict[str, int] = field(default_factory=dict)
    root_id: Optional[str] = None
    placed: list[str] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True


PositionLike = Union[LayoutPosition, tuple, list, Mapping]
ViewportLike = Union[Viewport, tuple, list, Mapping, None]


# ---------------------------------------------------------------------------
# Input normalisation
# ---------------------------------------------------------------------------

def resolve_viewport(viewport: ViewportLike) -> tuple[float, float]:
    """Return a usable ``(width, height)`` for any viewport-ish value.

    Accepts a ``Viewport``, a ``(width, height)`` pair, a mapping with
    ``width``/``height`` keys, or None.  Unusable dimensions fall back to
    the 800x600 default.
    """
    if viewport is None:
        return Viewport().resolved()
    if isinstance(viewport, Viewport):
        return viewport.resolved()
    if isinstance(viewport, Mapping):
        width, height = viewport.get("width"), viewport.get("height")
    else:
        width, height = viewport
    return Viewport.model_construct(
        width=_as_float(width), height=_as_float(height),
    ).resolved()


def _as_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def coerce_position(value: PositionLike) -> Optional[LayoutPosition]:
    """Turn a position-ish value into a LayoutPosition.

    Returns None when the value has no finite ``x``/``y``.
    """
    if value is None:
        return None
    if isinstance(value, LayoutPosition):
        x, y = value.x, value.y
    elif isinstance(value, Mapping):
        x, y = value.get("x"), value.get("y")
    elif isinstance(value, (tuple, list)) and len(value) == 2:
        x, y = value
    else:
        x, y = getattr(value, "x", None), getattr(value, "y", None)

    x, y = _as_float(x), _as_float(y)
    if x is None or y is None or not math.isfinite(x) or not math.isfinite(y):
        return None
    return LayoutPosition(x=x, y=y)


def _dedupe_nodes(nodes: Iterable[GraphNode]) -> dict[str, GraphNode]:
    """Index nodes by id; a repeated id keeps its first slot, last definition."""
    node_map: dict[str, GraphNode] = {}
    for node in nodes:
        node_map[node.id] = node
    return node_map


# ---------------------------------------------------------------------------
# Stage 1: seeding
# ---------------------------------------------------------------------------

def seed_positions(
    node_map: Mapping[str, GraphNode],
    previous_positions: Optional[Mapping[str, PositionLike]] = None,
) -> dict[str, LayoutPosition]:
    """Collect the positions that already exist before placement.

    Node-carried coordinates go in first, then ``previous_positions`` on
    top of them.  Entries for ids not in the node set are dropped.
    """
    seeded: dict[str, LayoutPosition] = {}
    for node_id, node in node_map.items():
        if node.has_position:
            seeded[node_id] = LayoutPosition(x=float(node.x), y=float(node.y))

    for node_id, value in (previous_positions or {}).items():
        if node_id not in node_map:
            continue
        pos = coerce_position(value)
        if pos is not None:
            seeded[node_id] = pos

    return seeded


# ---------------------------------------------------------------------------
# Stage 2: layering
# ---------------------------------------------------------------------------

def build_adjacency(
    node_ids: Iterable[str],
    edges: Iterable[GraphEdge],
) -> dict[str, list[str]]:
    """Undirected adjacency lists over the known node ids.

    Edges with an endpoint outside the node set, and self loops, are inert.
    """
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        if edge.source not in adjacency or edge.target not in adjacency:
            continue
        if edge.source == edge.target:
            continue
        adjacency[edge.source].append(edge.target)
        adjacency[edge.target].append(edge.source)
    return adjacency


def find_root(node_map: Mapping[str, GraphNode]) -> Optional[str]:
    """Id of the first ``main`` node, or None."""
    for node_id, node in node_map.items():
        if node.is_root:
            return node_id
    return None


def compute_layers(
    adjacency: Mapping[str, list[str]],
    root_id: str,
    rng: random.Random,
) -> dict[str, int]:
    """Breadth-first hop distance from ``root_id`` for every node.

    Nodes the root cannot reach get a random layer from
    ``DISCONNECTED_LAYERS``.
    """
    layers: dict[str, int] = {root_id: 0}
    queue = deque([root_id])

    while queue:
        current = queue.popleft()
        for neighbor in adjacency.get(current, []):
            if neighbor not in layers:
                layers[neighbor] = layers[current] + 1
                queue.append(neighbor)

    for node_id in adjacency:
        if node_id not in layers:
            layers[node_id] = rng.choice(DISCONNECTED_LAYERS)

    return layers


def scatter_in_disk(
    node_ids: Iterable[str],
    center: tuple[float, float],
    radius: float,
    rng: random.Random,
) -> dict[str, LayoutPosition]:
    """Random positions inside a disk, for graphs with no root."""
    cx, cy = center
    scattered: dict[str, LayoutPosition] = {}
    for node_id in node_ids:
        angle = rng.random() * 2 * math.pi
        distance = rng.random() * radius
        scattered[node_id] = LayoutPosition(
            x=cx + distance * math.cos(angle),
            y=cy + distance * math.sin(angle),
        )
    return scattered


# ---------------------------------------------------------------------------
# Stage 3: ring placement
# ---------------------------------------------------------------------------

def ring_radius(
    layer: int,
    count: int,
    width: float,
    height: float,
    min_separation: float = MIN_SEPARATION,
) -> float:
    """Radius for ``count`` nodes on the ring of ``layer``.

    The base radius grows with ``|layer|``; the minimum radius guarantees
    ``count`` evenly spaced points are ``min_separation`` apart by arc.
    """
    base = min(width, height) * (RING_BASE_FACTOR + RING_LAYER_FACTOR * abs(layer))
    minimum = count * min_separation / (2 * math.pi)
    return max(base, minimum)


def place_on_rings(
    node_ids: Iterable[str],
    layers: Mapping[str, int],
    center: tuple[float, float],
    width: float,
    height: float,
    rng: random.Random,
    min_separation: float = MIN_SEPARATION,
) -> dict[str, LayoutPosition]:
    """Spread unpositioned nodes evenly on one ring per layer.

    Layers are processed in ascending order and nodes keep their input
    order within a layer, so a seeded ``rng`` gives reproducible output.
    """
    grouped: dict[int, list[str]] = {}
    for node_id in node_ids:
        grouped.setdefault(layers.get(node_id, 0), []).append(node_id)

    cx, cy = center
    placed: dict[str, LayoutPosition] = {}

    for layer in sorted(grouped):
        members = grouped[layer]
        count = len(members)
        radius = ring_radius(layer, count, width, height, min_separation)

        for i, node_id in enumerate(members):
            angle = 2 * math.pi * i / count
            jittered_radius = radius * rng.uniform(1 - RING_RADIUS_JITTER, 1 + RING_RADIUS_JITTER)
            jittered_angle = angle + rng.uniform(-RING_ANGLE_JITTER, RING_ANGLE_JITTER)
            placed[node_id] = LayoutPosition(
                x=cx + jittered_radius * math.cos(jittered_angle),
                y=cy + jittered_radius * math.sin(jittered_angle),
            )

        logger.debug(f"Ring layer {layer}: {count} node(s) at radius {radius:.1f}")

    return placed


# ---------------------------------------------------------------------------
# Stage 4: relaxation
# ---------------------------------------------------------------------------

def relax(
    positions: dict[str, LayoutPosition],
    pinned: set[str],
    seeded: set[str],
    rng: random.Random,
    min_separation: float = MIN_SEPARATION,
    max_iterations: int = ITERATIONS,
    tolerance: float = SEPARATION_TOLERANCE,
) -> tuple[int, bool]:
    """Push apart pairs closer than ``min_separation``, in place.

    Each pass visits every pair once.  For a pair at distance ``d`` the push
    vector is the offset between them scaled by ``(min_separation - d) / d``;
    each mobile node moves half of it, in opposite directions.

    Mobility:
      - ``pinned`` nodes (the root) never move.
      - A seeded node stays put when its partner is a newly placed, mobile
        node; the new node yields.  Two seeded nodes push each other
        normally, and a seeded node always yields to a pinned one.

    Since fixed nodes never give ground, a new node wedged between several
    of them can still sit slightly short of ``min_separation`` when the pass
    cap runs out, even on small graphs.  That run reports ``converged=False``.

    Returns ``(passes_run, converged)``.  ``converged`` is True when the
    last pass found no pair closer than ``min_separation - tolerance``.
    """
    order = list(positions)
    passes = 0
    converged = not order

    for _ in range(max_iterations):
        passes += 1
        overlapping = 0
        moved = False

        for i, a_id in enumerate(order):
            a = positions[a_id]
            for b_id in order[i + 1:]:
                b = positions[b_id]

                dx = b.x - a.x
                dy = b.y - a.y
                distance = math.hypot(dx, dy)
                if distance >= min_separation - tolerance:
                    continue

                overlapping += 1

                a_pinned = a_id in pinned
                b_pinned = b_id in pinned
                a_fixed = a_pinned or (a_id in seeded and b_id not in seeded and not b_pinned)
                b_fixed = b_pinned or (b_id in seeded and a_id not in seeded and not a_pinned)
                if a_fixed and b_fixed:
                    continue

                if distance < COINCIDENT_DISTANCE:
                    # No direction to push along; pick one
                    angle = rng.random() * 2 * math.pi
                    dx = math.cos(angle) * COINCIDENT_DISTANCE
                    dy = math.sin(angle) * COINCIDENT_DISTANCE
                    distance = COINCIDENT_DISTANCE

                force = (min_separation - distance) / distance
                shift_x = dx * force * 0.5
                shift_y = dy * force * 0.5

                if not a_fixed:
                    a.x -= shift_x
                    a.y -= shift_y
                if not b_fixed:
                    b.x += shift_x
                    b.y += shift_y
                moved = True

        if overlapping == 0:
            converged = True
            break
        if not moved:
            # Only immovable pairs left
            break

    return passes, converged


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class GraphLayoutEngine:
    """Stateless radial layout for transaction graphs.

    Configuration lives on the instance; nothing about a particular graph
    does.  One engine can serve any number of callers concurrently.

    Randomness
    ----------
    Ring jitter, orphan layers and rootless scatter are random.  Pass
    ``rng`` to a call, or ``seed`` to the constructor, to make output
    reproducible; otherwise each call draws from a freshly seeded generator.
    """

    def __init__(
        self,
        min_separation: float = MIN_SEPARATION,
        iterations: int = ITERATIONS,
        seed: Optional[int] = None,
    ):
        self.min_separation = min_separation
        self.iterations = iterations
        self.seed = seed

    def _rng(self, rng: Optional[random.Random]) -> random.Random:
        if rng is not None:
            return rng
        return random.Random(self.seed)

    def layout(
        self,
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        viewport: ViewportLike = None,
        previous_positions: Optional[Mapping[str, PositionLike]] = None,
        rng: Optional[random.Random] = None,
    ) -> dict[str, LayoutPosition]:
        """Compute a position for every node, keyed by id."""
        return self.run(nodes, edges, viewport, previous_positions, rng).positions

    def run(
        self,
        nodes: list[GraphNode],
        edges: list[GraphEdge],
        viewport: ViewportLike = None,
        previous_positions: Optional[Mapping[str, PositionLike]] = None,
        rng: Optional[random.Random] = None,
    ) -> LayoutReport:
        """Full layout pass returning positions plus diagnostics.

        Steps:
        1. Seed positions from nodes and ``previous_positions``
        2. Centre an unpositioned root; BFS layers (or disk scatter)
        3. Ring placement for the remaining unpositioned nodes
        4. Minimum-separation relaxation
        """
        if nodes is None:
            raise TypeError("nodes must be a list of GraphNode, not None")

        rng = self._rng(rng)
        node_map = _dedupe_nodes(nodes)
        if not node_map:
            return LayoutReport(positions={})

        width, height = resolve_viewport(viewport)
        center = (width / 2, height / 2)

        # --- Stage 1: seed ---
        positions = seed_positions(node_map, previous_positions)
        seeded = set(positions)
        unpositioned = [node_id for node_id in node_map if node_id not in positions]
        placed: list[str] = []

        # --- Stage 2: layering ---
        root_id = find_root(node_map)
        layers: dict[str, int] = {}

        if root_id is None:
            radius = min(width, height) * SCATTER_DISK_FACTOR
            positions.update(scatter_in_disk(unpositioned, center, radius, rng))
            placed.extend(unpositioned)
        else:
            if root_id not in positions:
                positions[root_id] = LayoutPosition(x=center[0], y=center[1])
                placed.append(root_id)

            adjacency = build_adjacency(node_map, edges or [])
            layers = compute_layers(adjacency, root_id, rng)

            # --- Stage 3: rings ---
            ring_members = [node_id for node_id in unpositioned if node_id != root_id]
            positions.update(place_on_rings(
                ring_members, layers, center, width, height, rng,
                min_separation=self.min_separation,
            ))
            placed.extend(ring_members)

        # --- Stage 4: relax ---
        pinned = {node_id for node_id, node in node_map.items() if node.is_root}
        # Keep the output ordered like the input
        ordered = {node_id: positions[node_id] for node_id in node_map}
        iterations, converged = relax(
            ordered, pinned, seeded, rng,
            min_separation=self.min_separation,
            max_iterations=self.iterations,
        )

        if not converged:
            logger.info(
                f"Layout did not converge after {iterations} pass(es) "
                f"for {len(ordered)} nodes in {width:.0f}x{height:.0f}"
            )
        logger.debug(
            f"Layout: {len(ordered)} nodes, {len(seeded)} seeded, "
            f"{len(placed)} placed, {iterations} relaxation pass(es)"
        )

        return LayoutReport(
            positions=ordered,
            layers=layers,
            root_id=root_id,
            placed=placed,
            iterations=iterations,
            converged=converged,
        )


def compute_graph_layout(
    nodes: list[GraphNode],
    edges: list[GraphEdge],
    viewport: ViewportLike = None,
    previous_positions: Optional[Mapping[str, PositionLike]] = None,
    rng: Optional[random.Random] = None,
) -> dict[str, LayoutPosition]:
    """Lay out a graph with the default engine settings."""
    return GraphLayoutEngine().layout(nodes, edges, viewport, previous_positions, rng)
