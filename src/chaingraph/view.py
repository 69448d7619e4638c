"""
Interaction state for a displayed transaction graph.

The layout engine is stateless; whoever displays a graph owns the state
that makes successive layouts continuous:

    ViewTransform  — zoom and pan, and the screen <-> layout conversion
    GraphSession   — the current nodes/edges, the last positions, and the
                     drag overrides the user has made since

A data refresh calls ``GraphSession.update()``, which feeds the last
positions back to the engine so existing nodes stay put and only new nodes
are placed.  A node drag records the dropped position as an override and
``end_drag()`` relays out once, letting relaxation clear any overlap the
drop created.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from .layout import GraphLayoutEngine, LayoutPosition, LayoutReport, ViewportLike
from .models import GraphEdge, GraphNode


logger = logging.getLogger(__name__)


ZOOM_STEP = 0.1
MIN_ZOOM = 0.5
MAX_ZOOM = 2.0


@dataclass
class ViewTransform:
    """Pan/zoom applied when drawing: ``screen = world * zoom + pan``."""
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def zoom_in(self) -> float:
        self.zoom = min(round(self.zoom + ZOOM_STEP, 6), MAX_ZOOM)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = max(round(self.zoom - ZOOM_STEP, 6), MIN_ZOOM)
        return self.zoom

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def reset_pan(self) -> None:
        self.pan_x = 0.0
        self.pan_y = 0.0

    def screen_to_world(self, x: float, y: float) -> LayoutPosition:
        """Convert a point on the drawing surface to layout coordinates."""
        return LayoutPosition(
            x=(x - self.pan_x) / self.zoom,
            y=(y - self.pan_y) / self.zoom,
        )

    def world_to_screen(self, pos: LayoutPosition) -> tuple[float, float]:
        """Convert layout coordinates to a point on the drawing surface."""
        return (pos.x * self.zoom + self.pan_x, pos.y * self.zoom + self.pan_y)


class GraphSession:
    """One displayed graph and the positions it has accumulated.

    Not thread-safe; each display surface owns its own session.  The engine
    it calls is shared freely.
    """

    def __init__(
        self,
        viewport: ViewportLike = None,
        engine: Optional[GraphLayoutEngine] = None,
        rng: Optional[random.Random] = None,
    ):
        self.viewport = viewport
        self.engine = engine or GraphLayoutEngine()
        self.rng = rng
        self.transform = ViewTransform()
        self.nodes: list[GraphNode] = []
        self.edges: list[GraphEdge] = []
        self.positions: dict[str, LayoutPosition] = {}
        self.dragging: Optional[str] = None
        self.last_report: Optional[LayoutReport] = None

    def _relayout(self) -> dict[str, LayoutPosition]:
        report = self.engine.run(
            self.nodes,
            self.edges,
            self.viewport,
            previous_positions=self.positions,
            rng=self.rng,
        )
        self.positions = report.positions
        self.last_report = report
        return self.positions

    def update(self, nodes: list[GraphNode], edges: list[GraphEdge]) -> dict[str, LayoutPosition]:
        """Replace the graph data and lay it out, keeping known positions.

        Positions of ids that disappeared are forgotten.  The pan is reset
        so the refreshed graph shows centred.
        """
        self.nodes = list(nodes)
        self.edges = list(edges)
        self.transform.reset_pan()

        if not self.nodes:
            self.positions = {}
            self.last_report = None
            return self.positions

        positions = self._relayout()
        if self.last_report.placed:
            logger.debug(f"Session update placed {len(self.last_report.placed)} new node(s)")
        return positions

    def start_drag(self, node_id: str) -> None:
        if node_id not in self.positions:
            raise KeyError(node_id)
        self.dragging = node_id

    def move_node(self, node_id: str, screen_x: float, screen_y: float) -> LayoutPosition:
        """Record a drag override at a screen point.

        Raises:
            KeyError: If the node is not part of the current layout.
        """
        if node_id not in self.positions:
            raise KeyError(node_id)
        pos = self.transform.screen_to_world(screen_x, screen_y)
        self.positions[node_id] = pos
        return pos

    def end_drag(self) -> dict[str, LayoutPosition]:
        """Finish a drag gesture and relax any overlap the drop caused."""
        self.dragging = None
        if not self.nodes:
            return self.positions
        return self._relayout()

    def drop_node(self, node_id: str, screen_x: float, screen_y: float) -> dict[str, LayoutPosition]:
        """A whole drag gesture in one call: move, then relayout."""
        self.start_drag(node_id)
        self.move_node(node_id, screen_x, screen_y)
        return self.end_drag()
