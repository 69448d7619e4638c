"""
Theme definitions for chaingraph.

Provides dark and light color palettes for rendering transaction graphs.
Each theme defines colors for:
- Canvas background
- Text (title, node labels, icons, placeholder)
- Edges and arrowheads
- The selection ring around the highlighted node

Node fill colors come from the node category (see ``models.NODE_STYLES``)
and are the same in both themes.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ThemePalette:
    """Color palette for a theme."""

    # Canvas
    background: str

    # Text
    title_color: str
    label_color: str
    icon_color: str
    muted_text_color: str

    # Edges
    edge_color: str

    # Selection ring
    selected_outline: str


# Tailwind gray-900 surface (dark theme) - current default
DARK_THEME = ThemePalette(
    background="#111827",
    title_color="#e5e7eb",
    label_color="#ffffff",
    icon_color="#ffffff",
    muted_text_color="#9ca3af",
    edge_color="#9ca3af",
    selected_outline="#ffffff",
)


# Light theme - white background with darker edges and text
LIGHT_THEME = ThemePalette(
    background="#ffffff",
    title_color="#111827",
    label_color="#1f2937",
    icon_color="#ffffff",
    muted_text_color="#6b7280",
    edge_color="#6b7280",
    selected_outline="#111827",
)


# Theme registry
THEMES: dict[str, ThemePalette] = {
    "dark": DARK_THEME,
    "light": LIGHT_THEME,
}


def get_theme(name: str) -> ThemePalette:
    """Get a theme palette by name.

    Args:
        name: Theme name ("dark" or "light")

    Returns:
        ThemePalette for the requested theme

    Raises:
        ValueError: If theme name is not recognized
    """
    if name not in THEMES:
        valid = ", ".join(THEMES.keys())
        raise ValueError(f"Unknown theme '{name}'. Valid themes: {valid}")
    return THEMES[name]
