"""Export functionality for mindspace maps."""

import logging
from pathlib import Path
from typing import List, Tuple

from mindspace.database import get_data_dir
from mindspace.icons import DEFAULT_BORDER, DEFAULT_THEME
from mindspace.persistence import PersistenceGateway
from mindspace.registry import MapMeta, MapRegistry
from mindspace.render import render
from mindspace.tree import MindMapTree

logger = logging.getLogger(__name__)


def _require_cairo():
    try:
        import cairo
    except ImportError as exc:
        raise RuntimeError(
            "PNG and PDF export need pycairo: pip install 'mindspace[export]'"
        ) from exc
    return cairo


class MindMapExporter:
    """Handles exporting maps to various formats."""

    COLORS = {
        'bg_primary': (0.039, 0.039, 0.039),
        'text_primary': (0.878, 0.878, 0.878),
        'accent_primary': (1.0, 0.176, 0.176),
    }

    FONT_FACE = "monospace"
    FONT_SIZE = 14
    LINE_SPACING = 1.5
    PADDING = 40

    PAGE_SIZES = {
        "A4": (595, 842),
        "Letter": (612, 792),
        "Auto": None,
    }

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway
        self.registry = MapRegistry(gateway)

    def export_text(self, map_id: int, filepath: str,
                    theme: str = DEFAULT_THEME, border: str = DEFAULT_BORDER) -> bool:
        """Export the copy text of a map."""
        _, tree = self._load(map_id)
        Path(filepath).write_text(render(tree, theme, border).text + "\n", encoding="utf-8")
        logger.info("Exported map %d as text to %s", map_id, filepath)
        return True

    def export_markdown(self, map_id: int, filepath: str) -> bool:
        """Export a map to a Markdown outline."""
        meta, tree = self._load(map_id)

        lines = []

        # Frontmatter
        lines.append("---")
        lines.append(f"title: {meta.name}")
        lines.append(f"created: {meta.created_at}")
        lines.append(f"modified: {meta.updated_at}")
        lines.append("---")
        lines.append("")

        for node, depth in tree.walk():
            if depth == 0:
                lines.append(f"# {node.text}")
                lines.append("")
            elif depth == 1:
                lines.append(f"## {node.text}")
            elif depth == 2:
                lines.append(f"### {node.text}")
            else:
                indent = "  " * (depth - 3)
                lines.append(f"{indent}- {node.text}")

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write("\n".join(lines) + "\n")

        logger.info("Exported map %d as Markdown to %s", map_id, filepath)
        return True

    def export_png(self, map_id: int, filepath: str,
                   theme: str = DEFAULT_THEME, border: str = DEFAULT_BORDER,
                   scale: float = 2.0, transparent: bool = False) -> bool:
        """Export the rendered outline of a map to a PNG image."""
        cairo = _require_cairo()
        _, tree = self._load(map_id)
        lines = [line.text for line in render(tree, theme, border).lines]

        text_w, text_h = self._measure(cairo, lines)
        width = int((text_w + self.PADDING * 2) * scale)
        height = int((text_h + self.PADDING * 2) * scale)

        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
        cr = cairo.Context(surface)
        cr.scale(scale, scale)

        if not transparent:
            cr.set_source_rgb(*self.COLORS['bg_primary'])
            cr.paint()

        self._draw_lines(cr, cairo, lines, self.PADDING, self.PADDING)
        surface.write_to_png(filepath)
        logger.info("Exported map %d as PNG to %s", map_id, filepath)
        return True

    def export_pdf(self, map_id: int, filepath: str,
                   theme: str = DEFAULT_THEME, border: str = DEFAULT_BORDER,
                   page_size: str = "A4") -> bool:
        """Export the rendered outline of a map to PDF."""
        cairo = _require_cairo()
        meta, tree = self._load(map_id)
        lines = [line.text for line in render(tree, theme, border).lines]

        text_w, text_h = self._measure(cairo, lines)
        content_w = text_w + self.PADDING * 2
        content_h = text_h + self.PADDING * 2

        size = self.PAGE_SIZES.get(page_size, self.PAGE_SIZES["A4"])
        if size is None:
            width, height, scale = content_w, content_h, 1.0
        else:
            width, height = size
            scale = min(width / content_w, height / content_h, 1.0)

        surface = cairo.PDFSurface(filepath, width, height)
        cr = cairo.Context(surface)
        surface.set_metadata(cairo.PDF_METADATA_TITLE, meta.name)

        cr.set_source_rgb(*self.COLORS['bg_primary'])
        cr.paint()
        cr.scale(scale, scale)
        self._draw_lines(cr, cairo, lines, self.PADDING, self.PADDING)

        surface.finish()
        logger.info("Exported map %d as PDF to %s", map_id, filepath)
        return True

    def _load(self, map_id: int) -> Tuple[MapMeta, MindMapTree]:
        meta = self.registry.get(map_id)
        tree = self.gateway.load_tree(map_id) or MindMapTree()
        return meta, tree

    @property
    def line_height(self) -> float:
        return self.FONT_SIZE * self.LINE_SPACING

    def _measure(self, cairo, lines: List[str]) -> Tuple[float, float]:
        """Width of the widest line and total height of the block."""
        scratch = cairo.ImageSurface(cairo.FORMAT_ARGB32, 1, 1)
        cr = cairo.Context(scratch)
        cr.select_font_face(self.FONT_FACE, cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(self.FONT_SIZE)
        width = max((cr.text_extents(line).x_advance for line in lines), default=0)
        return width, self.line_height * len(lines)

    def _draw_lines(self, cr, cairo, lines: List[str], x: float, y: float):
        """Draw the outline; the root line is bold and highlighted."""
        for i, line in enumerate(lines):
            is_root = i == 0
            cr.select_font_face(
                self.FONT_FACE, cairo.FONT_SLANT_NORMAL,
                cairo.FONT_WEIGHT_BOLD if is_root else cairo.FONT_WEIGHT_NORMAL
            )
            cr.set_font_size(self.FONT_SIZE)
            cr.set_source_rgb(*self.COLORS['accent_primary' if is_root else 'text_primary'])
            cr.move_to(x, y + self.line_height * (i + 1) - self.FONT_SIZE * 0.4)
            cr.show_text(line)


def get_export_dir() -> Path:
    """Get the default export directory."""
    export_dir = get_data_dir() / "exports"
    export_dir.mkdir(exist_ok=True)
    return export_dir
