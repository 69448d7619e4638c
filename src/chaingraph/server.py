"""chaingraph MCP server — tools for laying out and rendering transaction graphs."""

from __future__ import annotations

import json
import logging
import os
import random
import uuid
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, ImageContent, Tool
from pydantic import ValidationError

from .layout import GraphLayoutEngine
from .parser import parse_yaml, graph_to_yaml
from .renderer import GraphRenderer


logger = logging.getLogger(__name__)


# --- Constants ---
OUTPUT_DIR = Path(os.environ.get("CHAINGRAPH_OUTPUT_DIR", Path.home() / ".chaingraph" / "graphs"))
TEMPLATES_DIR = Path(__file__).parent.parent.parent / "templates"

server = Server("chaingraph")


def _ensure_output_dir():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


_RECIPE_DESCRIPTION = (
    "YAML (or JSON) string defining the graph. Example:\n"
    "title: Peel chain\n"
    "viewport: {width: 800, height: 600}\n"
    "nodes:\n"
    "  - id: '0xabc'\n"
    "    category: main\n"
    "  - id: '0xdef'\n"
    "    category: cex\n"
    "edges:\n"
    "  - source: '0xabc'\n"
    "    target: '0xdef'\n"
    "    kind: token_transfer\n"
    "\n"
    "Categories: main, alt_wallet, cex, defi, bridge, mixer, contract, flagged\n"
    "Node x/y are optional. Nodes that carry them keep their position; "
    "the rest are placed around the 'main' node."
)


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="layout_graph",
            description=(
                "Compute 2D positions for a transaction graph. The 'main' node is "
                "centred, other nodes are placed on rings by hop distance and pushed "
                "at least 100 units apart. Returns positions by node id and the "
                "recipe with positions filled in, ready to feed back for the next "
                "incremental layout."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_recipe": {
                        "type": "string",
                        "description": _RECIPE_DESCRIPTION,
                    },
                    "seed": {
                        "type": "integer",
                        "description": "Random seed for reproducible jitter. Default: random.",
                    },
                },
                "required": ["yaml_recipe"],
            },
        ),
        Tool(
            name="render_graph",
            description=(
                "Lay out and render a transaction graph to PNG. "
                "Returns the path to the rendered PNG file."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_recipe": {
                        "type": "string",
                        "description": _RECIPE_DESCRIPTION,
                    },
                    "scale": {
                        "type": "number",
                        "description": "Render scale factor (default 2.0 for crisp output)",
                        "default": 2.0,
                    },
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated UUID.",
                    },
                    "selected": {
                        "type": "string",
                        "description": "Id of a node to highlight.",
                    },
                    "theme": {
                        "type": "string",
                        "enum": ["dark", "light"],
                        "description": "Override the recipe theme.",
                    },
                    "seed": {
                        "type": "integer",
                        "description": "Random seed for reproducible jitter. Default: random.",
                    },
                },
                "required": ["yaml_recipe"],
            },
        ),
        Tool(
            name="list_templates",
            description="List available graph recipe templates that can be used as starting points.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
        Tool(
            name="get_template",
            description="Get the YAML content of a specific template by name.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Template name (from list_templates output)",
                    },
                },
                "required": ["name"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent | ImageContent]:
    if name == "layout_graph":
        return await _layout_graph(arguments)
    elif name == "render_graph":
        return await _render_graph(arguments)
    elif name == "list_templates":
        return await _list_templates(arguments)
    elif name == "get_template":
        return await _get_template(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


def _seeded_rng(args: dict):
    seed = args.get("seed")
    if seed is None:
        return None
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ValueError(f"seed must be an integer, got {seed!r}")
    return random.Random(seed)


async def _layout_graph(args: dict) -> list[TextContent]:
    """Lay out a recipe and return positions plus the updated recipe."""
    try:
        graph = parse_yaml(args["yaml_recipe"])
        rng = _seeded_rng(args)
    except (ValueError, ValidationError, KeyError) as e:
        logger.warning(f"Rejected graph recipe: {e}")
        return [TextContent(type="text", text=f"Failed to parse graph recipe: {e}")]

    engine = GraphLayoutEngine()
    report = engine.run(
        graph.nodes,
        graph.edges,
        graph.viewport,
        previous_positions=graph.previous_positions(),
        rng=rng,
    )

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "title": graph.title,
            "nodes": len(report.positions),
            "edges": len(graph.valid_edges()),
            "root": report.root_id,
            "placed": report.placed,
            "converged": report.converged,
            "iterations": report.iterations,
            "positions": {
                node_id: {"x": round(pos.x, 2), "y": round(pos.y, 2)}
                for node_id, pos in report.positions.items()
            },
            "yaml_recipe": graph_to_yaml(graph, report.positions),
        }),
    )]


async def _render_graph(args: dict) -> list[TextContent]:
    """Render a YAML recipe to PNG."""
    _ensure_output_dir()

    scale = args.get("scale", 2.0)
    filename = args.get("filename", str(uuid.uuid4())[:8])

    try:
        graph = parse_yaml(args["yaml_recipe"])
        rng = _seeded_rng(args)
    except (ValueError, ValidationError, KeyError) as e:
        logger.warning(f"Rejected graph recipe: {e}")
        return [TextContent(type="text", text=f"Failed to parse graph recipe: {e}")]

    theme = args.get("theme")
    if theme:
        graph.theme = theme

    engine = GraphLayoutEngine()
    positions = engine.layout(
        graph.nodes,
        graph.edges,
        graph.viewport,
        previous_positions=graph.previous_positions(),
        rng=rng,
    )

    output_path = str(OUTPUT_DIR / f"{filename}.png")

    try:
        renderer = GraphRenderer(scale=scale, engine=engine)
        renderer.render(
            graph,
            output_path=output_path,
            positions=positions,
            selected=args.get("selected"),
        )
    except (ValueError, TypeError, OSError) as e:
        logger.error(f"Rendering failed: {e}")
        return [TextContent(type="text", text=f"Rendering failed: {e}")]

    # Save the positioned recipe next to the image
    yaml_path = str(OUTPUT_DIR / f"{filename}.yaml")
    Path(yaml_path).write_text(graph_to_yaml(graph, positions))

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "path": output_path,
            "yaml_path": yaml_path,
            "title": graph.title,
            "nodes": len(positions),
            "edges": len(graph.valid_edges()),
        }),
    )]


async def _list_templates(args: dict) -> list[TextContent]:
    """List available template files."""
    templates = []

    if TEMPLATES_DIR.exists():
        for f in sorted(TEMPLATES_DIR.glob("*.yaml")) + sorted(TEMPLATES_DIR.glob("*.yml")):
            templates.append({
                "name": f.stem,
                "path": str(f),
            })

    return [TextContent(
        type="text",
        text=json.dumps({"templates": templates}),
    )]


async def _get_template(args: dict) -> list[TextContent]:
    """Get template content by name."""
    name = args["name"]

    for ext in [".yaml", ".yml"]:
        path = TEMPLATES_DIR / f"{name}{ext}"
        if path.exists():
            return [TextContent(type="text", text=path.read_text())]

    return [TextContent(type="text", text=f"Template not found: {name}")]


def main():
    """Entry point for the MCP server."""
    import asyncio
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
