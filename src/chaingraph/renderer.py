"""Graph renderer using Pillow — produces transaction-graph PNG images."""

from __future__ import annotations

import logging
import math
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from .layout import GraphLayoutEngine, LayoutPosition
from .models import Graph, GraphNode
from .themes import get_theme, ThemePalette


logger = logging.getLogger(__name__)


# --- Font handling ---

def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default()


def _load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return _load_font(size)


def _is_scalable(font) -> bool:
    return isinstance(font, ImageFont.FreeTypeFont)


def _drawable_text(text: str, font) -> str:
    """Bitmap fallback fonts only cover latin-1."""
    if _is_scalable(font):
        return text
    return text.encode("latin-1", errors="replace").decode("latin-1")


# --- Color helpers ---

def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color to RGB tuple. Supports both 3-char and 6-char hex."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = hex_color[0]*2 + hex_color[1]*2 + hex_color[2]*2
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def _hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert hex color to RGBA tuple."""
    r, g, b = _hex_to_rgb(hex_color)
    return (r, g, b, alpha)


# --- Drawing primitives ---

def _draw_arrowhead(
    draw: ImageDraw.ImageDraw,
    tip: tuple[float, float],
    angle: float,
    color: str,
    length: float = 8,
    half_width: float = 4,
):
    """Draw a triangular arrowhead pointing along ``angle`` with its tip at ``tip``.

    Same shape as an SVG ``0,-4 8,0 0,4`` polygon rotated by ``angle``.
    """
    tx, ty = tip
    ux, uy = math.cos(angle), math.sin(angle)
    bx, by = tx - length * ux, ty - length * uy
    left = (bx - half_width * uy, by + half_width * ux)
    right = (bx + half_width * uy, by - half_width * ux)
    draw.polygon([(tx, ty), left, right], fill=color)


# --- Main renderer ---

class GraphRenderer:
    """Renders a Graph to a PNG image.

    Coordinates come from ``GraphLayoutEngine`` unless the caller passes
    positions explicitly (e.g. a session holding drag overrides).
    """

    # Layout constants
    PADDING = 40
    TITLE_HEIGHT = 40
    NODE_RADIUS = 15
    SELECTED_NODE_RADIUS = 20
    # Arrowheads stop this far short of the target centre
    ARROW_TARGET_OFFSET = 20
    LABEL_GAP = 5
    EDGE_WIDTH = 1.5
    SELECTED_OUTLINE_WIDTH = 2

    PLACEHOLDER_TEXT = "No data to visualize. Start an investigation to see the graph."

    def __init__(self, scale: float = 1.0, engine: Optional[GraphLayoutEngine] = None):
        self.scale = scale
        self.engine = engine or GraphLayoutEngine()
        self.font_icon = _load_bold_font(max(1, int(12 * scale)))
        self.font_label = _load_font(max(1, int(10 * scale)))
        self.font_title = _load_bold_font(max(1, int(18 * scale)))
        self.font_placeholder = _load_font(max(1, int(14 * scale)))
        self.theme: ThemePalette = get_theme("dark")  # Default theme

    def render(
        self,
        graph: Graph,
        output_path: Optional[str] = None,
        positions: Optional[dict[str, LayoutPosition]] = None,
        selected: Optional[str] = None,
    ) -> bytes:
        """Render the graph to PNG bytes. Optionally save to file.

        Args:
            graph: The graph to render.
            output_path: Optional path to save the PNG.
            positions: Precomputed positions by node id.  When omitted the
                       layout engine runs, seeded with positions carried on
                       the nodes.
            selected: Id of a node to draw enlarged with a selection ring.
        """
        self.theme = get_theme(graph.theme)

        if positions is None:
            positions = self.engine.layout(
                graph.nodes,
                graph.edges,
                graph.viewport,
                previous_positions=graph.previous_positions(),
            )

        bounds = self._calculate_bounds(graph, positions)
        img_width = max(1, int(bounds["width"] * self.scale))
        img_height = max(1, int(bounds["height"] * self.scale))

        img = Image.new("RGBA", (img_width, img_height), _hex_to_rgba(self.theme.background))
        draw = ImageDraw.Draw(img)

        # Offset for translating layout coordinates to image space
        ox = -bounds["min_x"]
        oy = -bounds["min_y"]

        self._draw_title(draw, graph.title, img_width)

        if not positions:
            self._draw_placeholder(draw, img_width, img_height)
        else:
            # Edges first (behind nodes)
            self._draw_edges(draw, graph, positions, ox, oy)
            for node_id in graph.node_ids():
                pos = positions.get(node_id)
                if pos is None:
                    continue
                self._draw_node(draw, graph.get_node(node_id), pos, ox, oy, node_id == selected)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        png_bytes = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(png_bytes)
            logger.info(f"Rendered {len(positions)} node(s) to {output_path}")

        return png_bytes

    def _calculate_bounds(self, graph: Graph, positions: dict[str, LayoutPosition]) -> dict:
        """Bounding box covering the viewport and every node (with its label)."""
        width, height = graph.viewport.resolved()
        min_x, min_y = 0.0, -self.TITLE_HEIGHT
        max_x, max_y = width, height

        reach = self.SELECTED_NODE_RADIUS + self.PADDING
        label_reach = reach + self.LABEL_GAP + 14
        for pos in positions.values():
            min_x = min(min_x, pos.x - reach)
            min_y = min(min_y, pos.y - reach)
            max_x = max(max_x, pos.x + reach)
            max_y = max(max_y, pos.y + label_reach)

        return {
            "min_x": min_x,
            "min_y": min_y,
            "width": max_x - min_x,
            "height": max_y - min_y,
        }

    def _to_image(self, pos: LayoutPosition, ox: float, oy: float) -> tuple[float, float]:
        return ((pos.x + ox) * self.scale, (pos.y + oy) * self.scale)

    def _draw_title(self, draw: ImageDraw.ImageDraw, title: str, img_width: int):
        """Draw the graph title centered at the top."""
        title = _drawable_text(title, self.font_title)
        bbox = self.font_title.getbbox(title)
        tw = bbox[2] - bbox[0]
        x = (img_width - tw) / 2
        draw.text((x, 10 * self.scale), title, fill=self.theme.title_color, font=self.font_title)

    def _draw_placeholder(self, draw: ImageDraw.ImageDraw, img_width: int, img_height: int):
        """Centered message shown when there is nothing to lay out."""
        text = self.PLACEHOLDER_TEXT
        bbox = self.font_placeholder.getbbox(text)
        tw = bbox[2] - bbox[0]
        th = bbox[3] - bbox[1]
        draw.text(
            ((img_width - tw) / 2, (img_height - th) / 2),
            text,
            fill=self.theme.muted_text_color,
            font=self.font_placeholder,
        )

    def _draw_edges(
        self,
        draw: ImageDraw.ImageDraw,
        graph: Graph,
        positions: dict[str, LayoutPosition],
        ox: float,
        oy: float,
    ):
        """Draw every edge as a straight line with an arrowhead near the target.

        Edges with an endpoint that has no position are skipped.
        """
        color = self.theme.edge_color
        line_width = max(1, round(self.EDGE_WIDTH * self.scale))

        for edge in graph.edges:
            source = positions.get(edge.source)
            target = positions.get(edge.target)
            if source is None or target is None:
                continue

            sx, sy = self._to_image(source, ox, oy)
            tx, ty = self._to_image(target, ox, oy)
            draw.line([(sx, sy), (tx, ty)], fill=color, width=line_width)

            dx = tx - sx
            dy = ty - sy
            distance = math.hypot(dx, dy)
            offset = self.ARROW_TARGET_OFFSET * self.scale
            if distance <= offset:
                continue

            ratio = (distance - offset) / distance
            _draw_arrowhead(
                draw,
                (sx + dx * ratio, sy + dy * ratio),
                math.atan2(dy, dx),
                color,
                length=8 * self.scale,
                half_width=4 * self.scale,
            )

    def _draw_node(
        self,
        draw: ImageDraw.ImageDraw,
        node: GraphNode,
        pos: LayoutPosition,
        ox: float,
        oy: float,
        is_selected: bool = False,
    ):
        """Draw a single node: category-colored circle, icon, short label."""
        style = node.get_style()
        cx, cy = self._to_image(pos, ox, oy)
        radius = (self.SELECTED_NODE_RADIUS if is_selected else self.NODE_RADIUS) * self.scale

        draw.ellipse(
            [cx - radius, cy - radius, cx + radius, cy + radius],
            fill=style.fill_color,
            outline=self.theme.selected_outline if is_selected else None,
            width=int(self.SELECTED_OUTLINE_WIDTH * self.scale) if is_selected else 0,
        )

        # Icon: bitmap fonts can't draw the symbol glyphs
        icon = style.icon if _is_scalable(self.font_icon) else style.ascii_icon
        if icon:
            bbox = self.font_icon.getbbox(icon)
            iw = bbox[2] - bbox[0]
            ih = bbox[3] - bbox[1]
            draw.text(
                (cx - iw / 2 - bbox[0], cy - ih / 2 - bbox[1]),
                icon,
                fill=self.theme.icon_color,
                font=self.font_icon,
            )

        label = _drawable_text(node.short_label(), self.font_label)
        bbox = self.font_label.getbbox(label)
        lw = bbox[2] - bbox[0]
        draw.text(
            (cx - lw / 2, cy + radius + self.LABEL_GAP * self.scale),
            label,
            fill=self.theme.label_color,
            font=self.font_label,
        )
