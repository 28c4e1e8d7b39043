"""Text rendering of a mind map tree.

``render`` produces both the live preview and the copy-to-clipboard text, so
the two can never disagree. It is a pure function of its inputs.
"""

from dataclasses import dataclass
from typing import List, Tuple

from mindspace.icons import DEFAULT_BORDER, DEFAULT_THEME, get_border, get_glyph
from mindspace.tree import MindMapTree, Node


@dataclass(frozen=True)
class RenderedLine:
    """One output line and the node it came from."""
    node_id: str
    text: str


@dataclass(frozen=True)
class RenderResult:
    """Full rendered text plus the per-node lines."""
    text: str
    lines: Tuple[RenderedLine, ...]

    def line_for(self, node_id: str) -> RenderedLine:
        for line in self.lines:
            if line.node_id == node_id:
                return line
        raise KeyError(node_id)


def render(tree: MindMapTree, theme: str = DEFAULT_THEME,
           border: str = DEFAULT_BORDER) -> RenderResult:
    """Render tree as indented text using the given theme and border style."""
    style = get_border(border)
    lines: List[RenderedLine] = []

    def label(node: Node, depth: int) -> str:
        glyph = get_glyph(theme, depth)
        return f"{glyph} {node.text}" if glyph else node.text

    def emit(node: Node, depth: int, prefix: str, is_last: bool):
        if depth == 0:
            line = label(node, depth)
            child_prefix = ""
        else:
            connector = style.last if is_last else style.branch
            line = prefix + connector + label(node, depth)
            child_prefix = prefix + (style.blank if is_last else style.pipe)

        lines.append(RenderedLine(node_id=node.id, text=line))
        count = len(node.children)
        for i, child_id in enumerate(node.children):
            emit(tree.nodes[child_id], depth + 1, child_prefix, i == count - 1)

    emit(tree.root, 0, "", True)
    return RenderResult(text="\n".join(line.text for line in lines), lines=tuple(lines))
