"""YAML recipe parser for chaingraph.

A recipe is a single mapping with a flat node list and edge list:

    title: Peel chain from 0xabc
    viewport: {width: 800, height: 600}
    nodes:
      - id: "0xabc"
        category: main
      - id: "0xdef"
        category: cex
        x: 520        # optional, a position from an earlier layout
        y: 300
    edges:
      - source: "0xabc"
        target: "0xdef"
        kind: token_transfer

Quote hex addresses: unquoted, YAML reads ``0xabc`` as an integer.
JSON is valid YAML, so the same loader reads API payloads.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Optional

import yaml

from .models import Graph, GraphEdge, GraphNode, Viewport


def parse_yaml(yaml_str: str) -> Graph:
    """Parse a YAML string into a Graph model."""
    if not isinstance(yaml_str, (str, bytes)):
        raise ValueError(f"Graph recipe must be text, got {type(yaml_str).__name__}")
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML: {e}") from e
    if not data:
        raise ValueError("Empty YAML input")
    if not isinstance(data, dict):
        raise ValueError(f"Graph recipe must be a mapping, got {type(data).__name__}")

    # Tolerate a wrapping ``graph:`` key
    if "graph" in data and isinstance(data["graph"], dict):
        data = data["graph"]

    return parse_dict(data)


def parse_file(path: str) -> Graph:
    """Parse a YAML file into a Graph model."""
    content = Path(path).read_text()
    return parse_yaml(content)


def parse_dict(data: dict) -> Graph:
    """Build a Graph from already-loaded recipe data."""
    viewport_data = data.get("viewport") or {}
    if not isinstance(viewport_data, dict):
        raise ValueError(f"viewport must be a mapping with width/height, got {viewport_data!r}")
    viewport = Viewport(
        width=viewport_data.get("width"),
        height=viewport_data.get("height"),
    )

    node_list = data.get("nodes") or []
    edge_list = data.get("edges") or []
    if not isinstance(node_list, list) or not isinstance(edge_list, list):
        raise ValueError("nodes and edges must be lists")

    nodes = [_parse_node(node_data) for node_data in node_list]
    edges = [_parse_edge(edge_data, index) for index, edge_data in enumerate(edge_list)]

    return Graph(
        title=data.get("title", "Transaction Graph"),
        theme=data.get("theme", "dark"),
        viewport=viewport,
        nodes=nodes,
        edges=edges,
    )


def _parse_node(data: dict) -> GraphNode:
    """Parse a single node from YAML data."""
    if not isinstance(data, dict):
        raise ValueError(f"Node entries must be mappings, got {data!r}")
    if "id" not in data:
        raise ValueError(f"Node entry without an id: {data!r}")

    return GraphNode(
        id=str(data["id"]),
        label=str(data.get("label") or ""),
        category=data.get("category", data.get("type", "alt_wallet")),
        x=_optional_float(data.get("x")),
        y=_optional_float(data.get("y")),
    )


def _parse_edge(data: dict, index: int) -> GraphEdge:
    """Parse a single edge from YAML data."""
    if not isinstance(data, dict):
        raise ValueError(f"Edge entries must be mappings, got {data!r}")
    if "source" not in data or "target" not in data:
        raise ValueError(f"Edge entry #{index} needs both source and target")

    return GraphEdge(
        id=str(data["id"]) if data.get("id") is not None else f"edge-{index + 1}",
        source=str(data["source"]),
        target=str(data["target"]),
        kind=data.get("kind", data.get("type", "token_transfer")),
    )


def _optional_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Coordinate must be a number, got {value!r}") from e
    return number if math.isfinite(number) else None


def graph_to_dict(graph: Graph, positions: Optional[dict] = None) -> dict:
    """Serialize a Graph to plain recipe data.

    ``positions`` (id -> LayoutPosition) overrides node coordinates, which
    is how a layout result is written back for the next call.
    """
    if positions:
        graph = graph.with_positions(positions)

    width, height = graph.viewport.resolved()
    data = {
        "title": graph.title,
        "theme": graph.theme,
        "viewport": {"width": width, "height": height},
        "nodes": [],
        "edges": [],
    }

    for node in graph.nodes:
        node_data = {"id": node.id, "category": node.category}
        if node.label:
            node_data["label"] = node.label
        if node.has_position:
            node_data["x"] = round(node.x, 2)
            node_data["y"] = round(node.y, 2)
        data["nodes"].append(node_data)

    for edge in graph.edges:
        edge_data = {"source": edge.source, "target": edge.target, "kind": edge.kind}
        if edge.id:
            edge_data = {"id": edge.id, **edge_data}
        data["edges"].append(edge_data)

    return data


def graph_to_yaml(graph: Graph, positions: Optional[dict] = None) -> str:
    """Serialize a Graph model back to YAML."""
    return yaml.dump(graph_to_dict(graph, positions), default_flow_style=False, sort_keys=False)
