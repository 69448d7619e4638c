"""
chaingraph web service - JSON layout API for graph front ends

A lightweight aiohttp server that lays out transaction graphs for a
browser front end, renders PNG snapshots, and keeps per-view drag sessions
so refreshes and drags stay continuous.

Usage:
    chaingraph-web [--port 8766] [--host 0.0.0.0]
"""

import asyncio
import json
import logging
import math
import os
import random
import uuid
from typing import Optional

from aiohttp import web
from pydantic import ValidationError

from .layout import GraphLayoutEngine, LayoutPosition
from .models import GraphEdge, GraphNode, Viewport
from .parser import parse_dict, parse_yaml
from .renderer import GraphRenderer
from .view import GraphSession

# Configure logging
logging.basicConfig(
    level=os.environ.get("CHAINGRAPH_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configuration
SESSIONS_KEY = web.AppKey("sessions", dict)
ENGINE_KEY = web.AppKey("engine", GraphLayoutEngine)

# Allow large graph payloads
MAX_REQUEST_SIZE = 8 * 1024 * 1024


def _positions_json(positions: dict[str, LayoutPosition]) -> dict:
    return {
        node_id: {"x": round(pos.x, 2), "y": round(pos.y, 2)}
        for node_id, pos in positions.items()
    }


def _parse_graph_payload(data: dict) -> tuple[list[GraphNode], list[GraphEdge], Viewport]:
    """Validate the nodes/edges/viewport part of a request body."""
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    nodes = data.get("nodes")
    if not isinstance(nodes, list):
        raise ValueError("'nodes' must be a list")

    graph = parse_dict({
        "nodes": nodes,
        "edges": data.get("edges") or [],
        "viewport": data.get("viewport") or {},
    })
    return graph.nodes, graph.edges, graph.viewport


def _seeded_rng(seed) -> Optional[random.Random]:
    if seed is None:
        return None
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ValueError(f"'seed' must be an integer, got {seed!r}")
    return random.Random(seed)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_json(request: web.Request):
    try:
        return await request.json()
    except ValueError as e:
        raise ValueError(f"Invalid JSON body: {e}") from e


async def handle_status(request):
    """Health check."""
    return web.json_response({
        "status": "ok",
        "sessions": len(request.app[SESSIONS_KEY]),
    })


async def handle_layout(request):
    """Stateless layout: nodes/edges/viewport/previous_positions in, positions out."""
    try:
        data = await _read_json(request)
        nodes, edges, viewport = _parse_graph_payload(data)
        previous = data.get("previous_positions") or {}
        if not isinstance(previous, dict):
            raise ValueError("'previous_positions' must be an object keyed by node id")
        rng = _seeded_rng(data.get("seed"))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Rejected layout request: {e}")
        return _error(str(e), 400)

    report = request.app[ENGINE_KEY].run(nodes, edges, viewport, previous, rng=rng)

    return web.json_response({
        "positions": _positions_json(report.positions),
        "layers": report.layers,
        "root": report.root_id,
        "placed": report.placed,
        "iterations": report.iterations,
        "converged": report.converged,
    })


async def handle_render(request):
    """Render a YAML/JSON recipe straight to PNG."""
    try:
        data = await _read_json(request)
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")
        recipe = data.get("yaml", "")
        if not recipe:
            return _error("No recipe provided", 400)
        if not isinstance(recipe, str):
            raise ValueError("'yaml' must be a string")
        graph = parse_yaml(recipe)
        theme = data.get("theme")
        if theme is not None and not isinstance(theme, str):
            raise ValueError("'theme' must be a string")
        if theme:
            graph.theme = theme
        scale = float(data.get("scale", 1.0))
        if not math.isfinite(scale) or scale <= 0:
            raise ValueError("'scale' must be a positive number")
        png = GraphRenderer(scale=scale, engine=request.app[ENGINE_KEY]).render(
            graph, selected=data.get("selected"),
        )
    except (ValueError, TypeError, ValidationError) as e:
        logger.warning(f"Render request failed: {e}")
        return _error(str(e), 400)

    return web.Response(body=png, content_type="image/png")


def _session_json(session_id: str, session: GraphSession) -> dict:
    report = session.last_report
    return {
        "session_id": session_id,
        "positions": _positions_json(session.positions),
        "placed": report.placed if report else [],
        "converged": report.converged if report else True,
        "zoom": session.transform.zoom,
        "pan": {"x": session.transform.pan_x, "y": session.transform.pan_y},
    }


def _get_session(request) -> tuple[str, GraphSession]:
    session_id = request.match_info["session_id"]
    session = request.app[SESSIONS_KEY].get(session_id)
    if session is None:
        raise web.HTTPNotFound(
            text=json.dumps({"error": f"Unknown session: {session_id}"}),
            content_type="application/json",
        )
    return session_id, session


async def handle_create_session(request):
    """Start a drag session with an initial graph."""
    try:
        data = await _read_json(request)
        nodes, edges, viewport = _parse_graph_payload(data)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Rejected session request: {e}")
        return _error(str(e), 400)

    session = GraphSession(viewport=viewport, engine=request.app[ENGINE_KEY])
    session.update(nodes, edges)

    session_id = str(uuid.uuid4())[:8]
    request.app[SESSIONS_KEY][session_id] = session
    logger.info(f"Session {session_id}: {len(session.positions)} node(s)")

    return web.json_response(_session_json(session_id, session), status=201)


async def handle_get_session(request):
    session_id, session = _get_session(request)
    return web.json_response(_session_json(session_id, session))


async def handle_update_session(request):
    """Refresh a session's graph data; known nodes keep their positions."""
    session_id, session = _get_session(request)
    try:
        data = await _read_json(request)
        nodes, edges, _ = _parse_graph_payload(data)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Rejected session update for {session_id}: {e}")
        return _error(str(e), 400)

    session.update(nodes, edges)
    return web.json_response(_session_json(session_id, session))


async def handle_drag(request):
    """Drop a node at a screen point and relax around it."""
    session_id, session = _get_session(request)
    try:
        data = await _read_json(request)
        node_id = str(data["node_id"])
        x = float(data["x"])
        y = float(data["y"])
    except (KeyError, TypeError, ValueError) as e:
        return _error(f"Drag needs node_id, x and y: {e}", 400)

    try:
        session.drop_node(node_id, x, y)
    except KeyError:
        return _error(f"Unknown node: {node_id}", 404)

    return web.json_response(_session_json(session_id, session))


async def handle_delete_session(request):
    session_id, _ = _get_session(request)
    del request.app[SESSIONS_KEY][session_id]
    return web.json_response({"deleted": session_id})


def create_app(engine: GraphLayoutEngine = None):
    """Create the aiohttp application."""
    app = web.Application(client_max_size=MAX_REQUEST_SIZE)
    app[SESSIONS_KEY] = {}
    app[ENGINE_KEY] = engine or GraphLayoutEngine()

    # API routes
    app.router.add_get('/api/status', handle_status)
    app.router.add_post('/api/layout', handle_layout)
    app.router.add_post('/api/render', handle_render)
    app.router.add_post('/api/sessions', handle_create_session)
    app.router.add_get('/api/sessions/{session_id}', handle_get_session)
    app.router.add_put('/api/sessions/{session_id}', handle_update_session)
    app.router.add_delete('/api/sessions/{session_id}', handle_delete_session)
    app.router.add_post('/api/sessions/{session_id}/drag', handle_drag)

    return app


async def main(host: str = '0.0.0.0', port: int = 8766):
    """Run the web server."""
    app = create_app()

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"chaingraph service running at http://{host}:{port}")

    # Keep running
    while True:
        await asyncio.sleep(3600)


def cli():
    import argparse

    parser = argparse.ArgumentParser(description='chaingraph layout web service')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8766, help='Port to listen on')
    args = parser.parse_args()

    try:
        asyncio.run(main(host=args.host, port=args.port))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == '__main__':
    cli()
