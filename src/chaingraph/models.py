"""
Data models for chaingraph — the transaction-graph vocabulary.

A graph is a flat set of **nodes** (blockchain addresses or contracts) and
**edges** (observed relationships between them), drawn inside a
**viewport**:

    Graph
    ├── Viewport   — the drawing surface the layout is centred in
    ├── GraphNode  — an address / entity (the atomic unit)
    └── GraphEdge  — a transfer, bridge hop, liquidity event, ...

Nodes carry a **category** drawn from a closed set that controls colour and
icon and marks the investigation root:

    main       — the address under investigation (layout root)
    alt_wallet — a suspected alternate wallet of the subject
    cex        — a centralised exchange deposit / hot wallet
    defi       — a DeFi protocol contract
    bridge     — a cross-chain bridge
    mixer      — a mixing service
    contract   — any other contract
    flagged    — an address on a sanctions / abuse list

Nodes are immutable values.  Layout never writes back into them; it returns
a fresh ``id -> position`` map, and ``Graph.with_positions()`` builds a new
graph when coordinates need to travel with the data.
"""

from __future__ import annotations

import math
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


NodeCategory = Literal[
    "main", "alt_wallet", "cex", "defi", "bridge", "mixer", "contract", "flagged",
]

NODE_CATEGORIES: tuple[str, ...] = (
    "main", "alt_wallet", "cex", "defi", "bridge", "mixer", "contract", "flagged",
)

EDGE_KINDS: tuple[str, ...] = (
    "token_transfer", "nft_transfer", "bridge_transaction", "liquidity_provision",
)

DEFAULT_VIEWPORT_WIDTH = 800.0
DEFAULT_VIEWPORT_HEIGHT = 600.0

# Labels longer than this are shown as ``first6...last4``
SHORT_LABEL_LIMIT = 10


# ---------------------------------------------------------------------------
# Styling
# ---------------------------------------------------------------------------

class NodeStyle(BaseModel):
    """Visual styling for a node.

    Attributes:
        fill_color:  Circle fill.
        icon:        Glyph drawn in the middle of the circle.
        ascii_icon:  Fallback glyph for fonts without the symbol range.
    """
    fill_color: str = "#6b7280"
    icon: str = ""
    ascii_icon: str = ""


NODE_STYLES: dict[str, NodeStyle] = {
    "main":       NodeStyle(fill_color="#4f46e5", icon="★", ascii_icon="*"),  # Indigo
    "alt_wallet": NodeStyle(fill_color="#f59e0b", icon="?", ascii_icon="?"),  # Amber
    "cex":        NodeStyle(fill_color="#10b981", icon="C", ascii_icon="C"),  # Emerald
    "defi":       NodeStyle(fill_color="#3b82f6", icon="D", ascii_icon="D"),  # Blue
    "bridge":     NodeStyle(fill_color="#8b5cf6", icon="B", ascii_icon="B"),  # Violet
    "mixer":      NodeStyle(fill_color="#ef4444", icon="M", ascii_icon="M"),  # Red
    "contract":   NodeStyle(fill_color="#6b7280", icon="⌘", ascii_icon="#"),  # Gray
    "flagged":    NodeStyle(fill_color="#b91c1c", icon="⚠", ascii_icon="!"),  # Dark red
}


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

class GraphNode(BaseModel):
    """An address or contract in the transaction graph.

    Identity
    --------
    ``id`` is the address (or a synthetic key) and must be stable across
    refreshes; layout continuity is keyed on it.  ``label`` is display only
    and falls back to the id via ``get_label()``.

    Position
    --------
    ``x`` / ``y`` are optional layout-space coordinates.  A node only counts
    as positioned when both are set and finite; anything else means "needs
    placement".
    """
    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    category: NodeCategory = "alt_wallet"
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return (
            self.x is not None and self.y is not None
            and math.isfinite(self.x) and math.isfinite(self.y)
        )

    @property
    def is_root(self) -> bool:
        return self.category == "main"

    def get_style(self) -> NodeStyle:
        """Get the style for this node's category."""
        return NODE_STYLES.get(self.category, NODE_STYLES["contract"])

    def get_label(self) -> str:
        """Return ``label`` if set, otherwise ``id``."""
        return self.label if self.label else self.id

    def short_label(self) -> str:
        """Return the label shortened to ``first6...last4`` when long.

        Addresses are the usual labels, and their prefix plus suffix is
        what investigators recognise.
        """
        label = self.get_label()
        if len(label) > SHORT_LABEL_LIMIT:
            return f"{label[:6]}...{label[-4:]}"
        return label


# ---------------------------------------------------------------------------
# Edge
# ---------------------------------------------------------------------------

class GraphEdge(BaseModel):
    """An observed relationship between two node ids.

    Edges point from ``source`` to ``target`` for rendering, but layout
    treats them as undirected.  Endpoints are not checked against the node
    set here: scraped data routinely references addresses that failed to
    resolve, and such edges are simply inert.
    """
    id: Optional[str] = None
    source: str
    target: str
    kind: str = "token_transfer"


# ---------------------------------------------------------------------------
# Viewport
# ---------------------------------------------------------------------------

class Viewport(BaseModel):
    """The drawing surface a layout is centred in."""
    width: Optional[float] = DEFAULT_VIEWPORT_WIDTH
    height: Optional[float] = DEFAULT_VIEWPORT_HEIGHT

    def resolved(self) -> tuple[float, float]:
        """Return usable ``(width, height)``.

        Before first paint a caller may not know its real dimensions, so any
        missing, non-finite or non-positive value is replaced by the default.
        """
        return (
            _usable_dimension(self.width, DEFAULT_VIEWPORT_WIDTH),
            _usable_dimension(self.height, DEFAULT_VIEWPORT_HEIGHT),
        )

    @property
    def center(self) -> tuple[float, float]:
        width, height = self.resolved()
        return (width / 2, height / 2)


def _usable_dimension(value: Optional[float], default: float) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        return default
    return float(value)


# ---------------------------------------------------------------------------
# Graph (root)
# ---------------------------------------------------------------------------

class Graph(BaseModel):
    """A complete transaction graph — the unit recipes load and render.

    The graph keeps a ``_node_map`` for O(1) lookup by id.  When ids repeat,
    the last definition wins, matching how layout seeds positions.
    """
    title: str = "Transaction Graph"
    theme: str = "dark"  # "dark" or "light"
    viewport: Viewport = Field(default_factory=Viewport)
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    _node_map: dict[str, GraphNode] = {}

    def model_post_init(self, __context):
        """Build the lookup map after initialization."""
        self._node_map = {}
        for node in self.nodes:
            self._node_map[node.id] = node

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        """Look up a node by id."""
        return self._node_map.get(node_id)

    def node_ids(self) -> list[str]:
        """Distinct node ids in first-seen order."""
        return list(self._node_map)

    def root(self) -> Optional[GraphNode]:
        """The first node of category ``main``, if any."""
        for node in self.nodes:
            if node.is_root:
                return node
        return None

    def valid_edges(self) -> list[GraphEdge]:
        """Edges whose endpoints both exist in the node set."""
        return [
            edge for edge in self.edges
            if edge.source in self._node_map and edge.target in self._node_map
        ]

    def previous_positions(self) -> dict[str, tuple[float, float]]:
        """Positions already carried on the nodes, keyed by id."""
        return {
            node.id: (node.x, node.y)
            for node in self._node_map.values()
            if node.has_position
        }

    def with_positions(self, positions: dict) -> "Graph":
        """Return a copy whose nodes carry the given positions.

        ``positions`` maps id to anything with ``x``/``y`` attributes or an
        ``(x, y)`` pair.  Nodes without an entry keep their coordinates.
        """
        nodes = []
        for node in self.nodes:
            pos = positions.get(node.id)
            if pos is None:
                nodes.append(node)
                continue
            if isinstance(pos, (tuple, list)):
                x, y = pos
            else:
                x, y = pos.x, pos.y
            nodes.append(node.model_copy(update={"x": float(x), "y": float(y)}))
        return Graph(
            title=self.title,
            theme=self.theme,
            viewport=self.viewport,
            nodes=nodes,
            edges=list(self.edges),
        )
