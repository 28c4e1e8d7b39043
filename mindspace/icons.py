"""Icon themes and border styles used by the text renderer.

A theme maps node depth (0 = root, 1, 2, 3+) to a glyph prefix. A border
style maps a node's position among its siblings to the connector drawn in
front of it. Both are plain registries: adding an entry adds an option.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from mindspace.errors import InvalidOperation

# Glyphs per depth; the last entry is reused for every deeper level.
THEMES: Dict[str, Tuple[str, ...]] = {
    "simple": ("",),
    "hiyoko": ("🐔", "🐤", "🐣", "🥚"),
    "family": ("👴", "👨", "👦", "👶"),
}

DEFAULT_THEME = "simple"


@dataclass(frozen=True)
class BorderStyle:
    """Connector pieces for one border style."""
    branch: str      # before a node that has siblings below it
    last: str        # before the last node among its siblings
    pipe: str        # ancestor level that still has siblings below
    blank: str       # ancestor level that was the last sibling


BORDERS: Dict[str, BorderStyle] = {
    "border": BorderStyle(branch="├─ ", last="└─ ", pipe="│  ", blank="   "),
    "none": BorderStyle(branch="   ", last="   ", pipe="   ", blank="   "),
}

DEFAULT_BORDER = "border"


def get_theme(name: str) -> Tuple[str, ...]:
    """Get the glyph table of a theme."""
    try:
        return THEMES[name]
    except KeyError:
        raise InvalidOperation("use theme", f"unknown theme '{name}'") from None


def get_border(name: str) -> BorderStyle:
    """Get a border style by name."""
    try:
        return BORDERS[name]
    except KeyError:
        raise InvalidOperation("use border", f"unknown border style '{name}'") from None


def get_glyph(theme: str, depth: int) -> str:
    """Get the glyph a theme draws in front of a node at depth."""
    glyphs = get_theme(theme)
    return glyphs[min(depth, len(glyphs) - 1)]


def list_themes() -> list:
    """List all theme names."""
    return list(THEMES.keys())


def list_borders() -> list:
    """List all border style names."""
    return list(BORDERS.keys())
