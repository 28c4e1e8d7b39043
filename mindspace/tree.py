"""Tree model for the content of a single mind map.

Nodes live in an arena (``MindMapTree.nodes``) keyed by id; each node keeps
the ids of its children in display order. The persisted form is the nested
``{"root": {"id", "text", "children": [...]}}`` document.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from mindspace.errors import CorruptState, InvalidOperation

logger = logging.getLogger(__name__)

ROOT_ID = "root"
DEFAULT_ROOT_TEXT = "中心テーマ"
DEFAULT_NODE_TEXT = "新しいトピック"


class Direction(Enum):
    """Keyboard navigation directions."""
    PARENT = "parent"
    FIRST_CHILD = "firstChild"
    PREV_SIBLING = "prevSibling"
    NEXT_SIBLING = "nextSibling"


KEY_DIRECTIONS = {
    "ArrowLeft": Direction.PARENT,
    "ArrowRight": Direction.FIRST_CHILD,
    "ArrowUp": Direction.PREV_SIBLING,
    "ArrowDown": Direction.NEXT_SIBLING,
}


@dataclass
class Node:
    """A node in the mind map."""
    id: str
    text: str = ""
    parent_id: Optional[str] = None
    children: List[str] = field(default_factory=list)


class MindMapTree:
    """Rooted tree of nodes plus the current selection."""

    def __init__(self, root_text: str = DEFAULT_ROOT_TEXT):
        self.nodes: Dict[str, Node] = {ROOT_ID: Node(id=ROOT_ID, text=root_text)}
        self.selection: Set[str] = {ROOT_ID}
        self.dirty = False
        self.on_change: Optional[Callable[["MindMapTree"], None]] = None
        self._next_seq = 1

    @property
    def root(self) -> Node:
        return self.nodes[ROOT_ID]

    def get(self, node_id: str) -> Node:
        """Get a node by id."""
        node = self.nodes.get(node_id)
        if node is None:
            raise InvalidOperation("find node", f"no node with id '{node_id}'")
        return node

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    # ==================== Mutations ====================

    def add_child(self, parent_id: str, text: str = DEFAULT_NODE_TEXT) -> str:
        """Append a new child under parent_id and select it."""
        parent = self.get(parent_id)
        node = Node(id=self._new_id(), text=text, parent_id=parent.id)
        self.nodes[node.id] = node
        parent.children.append(node.id)
        self.selection = {node.id}
        self._mark_dirty()
        return node.id

    def add_sibling(self, node_id: str, text: str = DEFAULT_NODE_TEXT) -> str:
        """Insert a new node right after node_id and select it."""
        node = self.get(node_id)
        if node.parent_id is None:
            raise InvalidOperation("add sibling", "the root node has no siblings")
        parent = self.nodes[node.parent_id]
        sibling = Node(id=self._new_id(), text=text, parent_id=parent.id)
        self.nodes[sibling.id] = sibling
        parent.children.insert(parent.children.index(node.id) + 1, sibling.id)
        self.selection = {sibling.id}
        self._mark_dirty()
        return sibling.id

    def rename(self, node_id: str, text: str):
        """Replace the text of a node."""
        node = self.get(node_id)
        if node.text == text:
            return
        node.text = text
        self._mark_dirty()

    def delete(self, node_id: str):
        """Delete a node and all its descendants."""
        node = self.get(node_id)
        if node.parent_id is None:
            raise InvalidOperation("delete node", "the root node cannot be deleted")

        parent = self.nodes[node.parent_id]
        parent.children.remove(node.id)
        removed = [n.id for n, _ in self.walk(node.id)]
        for removed_id in removed:
            del self.nodes[removed_id]

        self.selection -= set(removed)
        if not self.selection:
            self.selection = {parent.id}
        self._mark_dirty()

    # ==================== Navigation & Selection ====================

    def navigate(self, from_id: str, direction: Direction) -> str:
        """Move the selection one step from from_id and return the new node id.

        Vertical moves follow the nodes at the same depth in document order,
        so they cross into the neighbouring parent's children at a boundary.
        Moves with no target leave the selection on from_id.
        """
        node = self.get(from_id)
        target = node.id

        if direction is Direction.PARENT:
            if node.parent_id is not None:
                target = node.parent_id
        elif direction is Direction.FIRST_CHILD:
            if node.children:
                target = node.children[0]
        else:
            row = self._row(self.depth(node.id))
            idx = row.index(node.id)
            step = -1 if direction is Direction.PREV_SIBLING else 1
            if 0 <= idx + step < len(row):
                target = row[idx + step]

        logger.debug("navigate %s %s -> %s", from_id, direction.value, target)
        self.selection = {target}
        return target

    def select(self, node_id: str):
        """Make node_id the only selected node."""
        self.selection = {self.get(node_id).id}

    def clear_selection(self):
        self.selection = set()

    @property
    def selected_id(self) -> Optional[str]:
        """The selected node when exactly one is selected."""
        if len(self.selection) == 1:
            return next(iter(self.selection))
        return None

    # ==================== Traversal ====================

    def walk(self, start_id: str = ROOT_ID) -> Iterator[Tuple[Node, int]]:
        """Yield (node, depth) pairs in pre-order, depth relative to start_id."""
        stack = [(self.get(start_id), 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            for child_id in reversed(node.children):
                stack.append((self.nodes[child_id], depth + 1))

    def depth(self, node_id: str) -> int:
        node = self.get(node_id)
        depth = 0
        while node.parent_id is not None:
            node = self.nodes[node.parent_id]
            depth += 1
        return depth

    def _row(self, depth: int) -> List[str]:
        return [n.id for n, d in self.walk() if d == depth]

    # ==================== Serialization ====================

    def copy(self) -> "MindMapTree":
        """Deep copy with the same node ids and no change hook."""
        clone = MindMapTree.__new__(MindMapTree)
        clone.nodes = copy.deepcopy(self.nodes)
        clone.selection = {ROOT_ID}
        clone.dirty = False
        clone.on_change = None
        clone._next_seq = self._next_seq
        return clone

    def to_dict(self) -> Dict[str, Any]:
        def nest(node: Node) -> Dict[str, Any]:
            return {
                "id": node.id,
                "text": node.text,
                "children": [nest(self.nodes[c]) for c in node.children],
            }
        return {"root": nest(self.root)}

    @classmethod
    def from_dict(cls, data: Any, key: str = "tree") -> "MindMapTree":
        """Build a tree from its persisted form, raising CorruptState when malformed."""
        if not isinstance(data, dict) or not isinstance(data.get("root"), dict):
            raise CorruptState(key, "missing root node")

        # First pass: shape checks and the set of ids already taken.
        taken = {ROOT_ID}

        def check(raw: Any, is_root: bool):
            if not isinstance(raw, dict):
                raise CorruptState(key, "node is not an object")
            if not isinstance(raw.get("children", []), list):
                raise CorruptState(key, "children is not a list")
            if not is_root and raw.get("id") is not None:
                node_id = str(raw["id"])
                if node_id in taken:
                    raise CorruptState(key, f"duplicate node id '{node_id}'")
                taken.add(node_id)
            for child in raw.get("children", []):
                check(child, False)

        check(data["root"], True)

        tree = cls(root_text=str(data["root"].get("text", DEFAULT_ROOT_TEXT)))

        def attach(raw: Dict[str, Any], parent: Node):
            if raw.get("id") is not None:
                node_id = str(raw["id"])
            else:
                while f"n{tree._next_seq}" in taken:
                    tree._next_seq += 1
                node_id = f"n{tree._next_seq}"
                taken.add(node_id)
            node = Node(id=node_id, text=str(raw.get("text", "")), parent_id=parent.id)
            tree.nodes[node.id] = node
            parent.children.append(node.id)
            for child in raw.get("children", []):
                attach(child, node)

        for child in data["root"].get("children", []):
            attach(child, tree.root)
        return tree

    # ==================== Internals ====================

    def _new_id(self) -> str:
        while f"n{self._next_seq}" in self.nodes:
            self._next_seq += 1
        node_id = f"n{self._next_seq}"
        self._next_seq += 1
        return node_id

    def _mark_dirty(self):
        self.dirty = True
        if self.on_change:
            self.on_change(self)
