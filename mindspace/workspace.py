"""Workspace controller: the single entry point used by a front end.

The controller owns the active-map pointer and the display settings (held
in a WorkspaceContext), delegates content edits to the active MindMapTree,
map management to the MapRegistry and storage to the PersistenceGateway.
Errors raised below it are caught here, logged, kept in ``last_error`` and
turned into a no-op return value.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from mindspace.database import Database
from mindspace.errors import CorruptState, InvalidOperation, MindspaceError
from mindspace.icons import DEFAULT_BORDER, DEFAULT_THEME, get_border, get_theme
from mindspace.persistence import DEFAULT_SIDEBAR_WIDTH, PersistenceGateway, clamp_sidebar_width
from mindspace.registry import DEFAULT_MAP_NAME, MapMeta, MapRegistry, SortMode
from mindspace.render import RenderResult, render
from mindspace.tree import DEFAULT_NODE_TEXT, KEY_DIRECTIONS, Direction, MindMapTree

logger = logging.getLogger(__name__)

DEFAULT_PAGE = "index.html"
ACTIVE_ICON = "📌"
EXPANDED_TOGGLE = "▼"
COLLAPSED_TOGGLE = "►"
BASE_INDENT_PX = 12
INDENT_STEP_PX = 16


@dataclass
class WorkspaceContext:
    """Process-wide state of one workspace session."""
    active_map_id: Optional[int] = None
    sort_mode: SortMode = SortMode.NONE
    copy_format: str = DEFAULT_THEME
    copy_border: str = DEFAULT_BORDER
    collapse_state: Dict[int, bool] = field(default_factory=dict)
    sidebar_width: int = DEFAULT_SIDEBAR_WIDTH
    url: str = DEFAULT_PAGE


@dataclass(frozen=True)
class SidebarItem:
    """One row of the map list."""
    map_id: int
    name: str
    depth: int
    is_child: bool
    active: bool
    icon: str
    toggle: str
    indent_px: int


@dataclass
class RenameSession:
    """An in-progress rename that can still be cancelled."""
    map_id: int
    original_name: str
    draft: str


def build_url(map_id: int, base: str = DEFAULT_PAGE) -> str:
    """Return base with its id query parameter set to map_id."""
    parts = urlsplit(base)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "id"]
    query.append(("id", str(map_id)))
    return urlunsplit(parts._replace(query=urlencode(query)))


def parse_url_id(url: Optional[str]) -> Optional[int]:
    """Extract the id query parameter from url."""
    if not url:
        return None
    for key, value in parse_qsl(urlsplit(url).query):
        if key == "id":
            try:
                return int(value)
            except ValueError:
                logger.warning("Ignoring non-numeric id parameter %r", value)
                return None
    return None


class Workspace:
    """Multi-map workspace controller."""

    def __init__(self, gateway: PersistenceGateway, url: Optional[str] = None):
        self.gateway = gateway
        self.registry = MapRegistry(gateway)
        self.context = WorkspaceContext()
        self.tree: Optional[MindMapTree] = None
        self.last_error: Optional[MindspaceError] = None
        self.rename_session: Optional[RenameSession] = None
        self.sidebar_items: List[SidebarItem] = []
        self.preview: Optional[RenderResult] = None

        # Callbacks
        self.on_render: Optional[Callable[["Workspace"], None]] = None

        self._start(url)

    @classmethod
    def open(cls, db_path: Optional[Union[Path, str]] = None, url: Optional[str] = None) -> "Workspace":
        """Open the workspace stored at db_path (default data dir)."""
        return cls(PersistenceGateway(Database(db_path)), url=url)

    def close(self):
        """Save the active map and close the store."""
        self.save_current()
        self.gateway.db.close()

    # ==================== Startup ====================

    def _start(self, url: Optional[str]):
        try:
            self.gateway.run_migrations()
            metas = self.registry.all()
        except CorruptState as exc:
            self._fail(exc)
            logger.warning("Starting with a fresh workspace")
            self.gateway.reset_meta()
            self.gateway.run_migrations()
            metas = []

        if not metas:
            self.registry.create()

        ctx = self.context
        ctx.sort_mode = self.gateway.load_sort_mode()
        ctx.copy_format = self.gateway.load_copy_format()
        ctx.copy_border = self.gateway.load_copy_border()
        ctx.sidebar_width = self.gateway.load_sidebar_width()
        try:
            ctx.collapse_state = self.gateway.load_collapse_state()
        except CorruptState as exc:
            self._fail(exc)
            ctx.collapse_state = {}
        if url:
            ctx.url = url

        self._activate(self._resolve_initial_id(url))

    def _resolve_initial_id(self, url: Optional[str]) -> int:
        """URL id parameter, then the last active map, then the first listed map."""
        ids = {m.id for m in self.registry.all()}
        requested = parse_url_id(url)
        if requested is not None:
            if requested in ids:
                return requested
            logger.warning("Map %d from URL does not exist", requested)
        last_active = self.gateway.load_last_active_id()
        if last_active in ids:
            return last_active
        return self._fallback_id()

    # ==================== Map Switching ====================

    @property
    def current_map_id(self) -> Optional[int]:
        return self.context.active_map_id

    def switch_to(self, map_id: int) -> bool:
        """Save the active map and display map_id instead."""
        if not self.registry.exists(map_id):
            self._fail(InvalidOperation("switch map", f"no map with id {map_id}"))
            return False
        if map_id == self.context.active_map_id:
            return True
        self.save_current()
        self._activate(map_id)
        logger.info("Switched to map %d", map_id)
        return True

    def save_current(self) -> bool:
        """Persist the active tree and bump its updatedAt.

        If another session deleted the active map, nothing is written and
        the first remaining map becomes active instead.
        """
        map_id = self.context.active_map_id
        if self.tree is None or map_id is None:
            return True
        try:
            with self.gateway.transaction():
                self.gateway.save_tree(map_id, self.tree)
                self.registry.touch(map_id)
        except MindspaceError as exc:
            self._fail(exc)
            self.tree = None
            self._activate(self._fallback_id())
            return False
        return True

    def _fallback_id(self) -> int:
        listed = self.registry.list(self.context.sort_mode)
        if listed:
            return listed[0].meta.id
        return self.registry.create().id

    def _activate(self, map_id: int):
        self.tree = self._load_tree(map_id)
        self.tree.on_change = self._on_tree_changed
        self.context.active_map_id = map_id
        self.context.url = build_url(map_id, self.context.url)
        self.gateway.save_last_active_id(map_id)
        self.refresh()

    def _load_tree(self, map_id: int) -> MindMapTree:
        try:
            tree = self.gateway.load_tree(map_id)
        except CorruptState as exc:
            self._fail(exc)
            tree = None
        if tree is None:
            tree = MindMapTree()
            self.gateway.save_tree(map_id, tree)
        return tree

    def _on_tree_changed(self, tree: MindMapTree):
        self.save_current()
        self.refresh()

    # ==================== Map Management ====================

    def create_new(self, parent_id: Optional[int] = None,
                   name: str = DEFAULT_MAP_NAME) -> Optional[MapMeta]:
        """Create a map and switch to it."""
        try:
            meta = self.registry.create(name, parent_id)
        except MindspaceError as exc:
            return self._fail(exc)
        self.switch_to(meta.id)
        return meta

    def add_child_map(self, parent_id: int) -> Optional[MapMeta]:
        """Create a child map under a top-level map and switch to it."""
        try:
            parent = self.registry.get(parent_id)
            if parent.parent_id is not None:
                raise InvalidOperation("add child map", "child maps cannot have child maps")
        except MindspaceError as exc:
            return self._fail(exc)
        if self.context.collapse_state.get(parent_id):
            self.set_collapsed(parent_id, False)
        return self.create_new(parent_id)

    def duplicate_map(self, map_id: int) -> Optional[MapMeta]:
        """Copy a map (content included) and switch to the copy."""
        if map_id == self.context.active_map_id:
            self.save_current()
        try:
            meta = self.registry.duplicate(map_id)
        except MindspaceError as exc:
            return self._fail(exc)
        self.switch_to(meta.id)
        return meta

    def rename_map(self, map_id: int, name: str) -> bool:
        """Rename a map; an empty name keeps the old one."""
        try:
            self.registry.rename(map_id, name)
        except MindspaceError as exc:
            self._fail(exc)
            return False
        self.refresh()
        return True

    def delete_map(self, map_id: int) -> bool:
        """Delete a map; the last remaining map is refused."""
        try:
            self.registry.delete(map_id)
        except MindspaceError as exc:
            self._fail(exc)
            return False

        self.context.collapse_state.pop(map_id, None)
        if self.rename_session and self.rename_session.map_id == map_id:
            self.rename_session = None
        if map_id == self.context.active_map_id:
            # Its data is gone; nothing to autosave.
            self.tree = None
            self._activate(self._fallback_id())
        else:
            self.refresh()
        return True

    def can_delete(self, map_id: int) -> bool:
        return len(self.registry.all()) > 1 and self.registry.exists(map_id)

    def menu_actions(self, map_id: int) -> List[str]:
        """Context menu entries offered for a map."""
        try:
            meta = self.registry.get(map_id)
        except MindspaceError as exc:
            self._fail(exc)
            return []
        actions = ["rename", "duplicate"]
        if meta.parent_id is None:
            actions.append("add-child-map")
        if self.can_delete(map_id):
            actions.append("delete")
        return actions

    # ==================== Rename Sessions ====================

    def begin_rename(self, map_id: int) -> Optional[RenameSession]:
        """Start an inline rename of map_id."""
        try:
            meta = self.registry.get(map_id)
        except MindspaceError as exc:
            return self._fail(exc)
        self.rename_session = RenameSession(map_id=map_id, original_name=meta.name, draft=meta.name)
        return self.rename_session

    def update_rename(self, text: str):
        if self.rename_session:
            self.rename_session.draft = text

    def commit_rename(self) -> bool:
        """Apply the draft name of the open rename session."""
        session = self.rename_session
        if session is None:
            return False
        self.rename_session = None
        return self.rename_map(session.map_id, session.draft)

    def cancel_rename(self):
        """Abandon the open rename session without writing anything."""
        if self.rename_session:
            logger.debug("Cancelled rename of map %d", self.rename_session.map_id)
        self.rename_session = None

    # ==================== Node Operations ====================

    def add_node(self, parent_id: Optional[str] = None, text: str = DEFAULT_NODE_TEXT) -> Optional[str]:
        """Add a child under parent_id (default: the selected node)."""
        try:
            tree = self._tree()
            node_id = tree.add_child(parent_id or self._focus_id(), text)
        except MindspaceError as exc:
            return self._fail(exc)
        return node_id if self._kept(tree) else None

    def add_sibling_node(self, node_id: Optional[str] = None, text: str = DEFAULT_NODE_TEXT) -> Optional[str]:
        try:
            tree = self._tree()
            new_id = tree.add_sibling(node_id or self._focus_id(), text)
        except MindspaceError as exc:
            return self._fail(exc)
        return new_id if self._kept(tree) else None

    def rename_node(self, node_id: str, text: str) -> bool:
        try:
            tree = self._tree()
            tree.rename(node_id, text)
        except MindspaceError as exc:
            self._fail(exc)
            return False
        return self._kept(tree)

    def delete_node(self, node_id: Optional[str] = None) -> bool:
        try:
            tree = self._tree()
            tree.delete(node_id or self._focus_id())
        except MindspaceError as exc:
            self._fail(exc)
            return False
        return self._kept(tree)

    def select_node(self, node_id: str) -> bool:
        """Select a node, e.g. after a click on its preview line."""
        try:
            self._tree().select(node_id)
        except MindspaceError as exc:
            self._fail(exc)
            return False
        return True

    def navigate(self, direction: Direction) -> Optional[str]:
        """Move the selection from the focused node."""
        try:
            return self._tree().navigate(self._focus_id(), direction)
        except MindspaceError as exc:
            return self._fail(exc)

    def handle_key(self, key: str) -> bool:
        """Dispatch a key press; returns True when the key was consumed.

        While a rename is open every key goes to the rename draft, so
        editing keys such as Backspace never reach the tree.
        """
        session = self.rename_session
        if session is not None:
            if key == "Enter":
                self.commit_rename()
            elif key == "Escape":
                self.cancel_rename()
            elif key == "Backspace":
                session.draft = session.draft[:-1]
            elif len(key) == 1:
                session.draft += key
            return True

        if key in KEY_DIRECTIONS:
            return self.navigate(KEY_DIRECTIONS[key]) is not None
        if key == "Tab":
            return self.add_node() is not None
        if key == "Enter":
            return self.add_sibling_node() is not None
        if key in ("Backspace", "Delete"):
            return self.delete_node()
        return False

    # ==================== Settings ====================

    @property
    def sort_mode(self) -> SortMode:
        return self.context.sort_mode

    def set_sort_mode(self, mode: Union[SortMode, str]) -> bool:
        try:
            mode = SortMode(mode)
        except ValueError:
            self._fail(InvalidOperation("set sort mode", f"unknown sort mode {mode!r}"))
            return False
        self.context.sort_mode = mode
        self.gateway.save_sort_mode(mode)
        self.refresh()
        return True

    def toggle_sort(self) -> SortMode:
        """Flip between manual order and alphabetical order."""
        new_mode = SortMode.NONE if self.context.sort_mode == SortMode.ALPHA else SortMode.ALPHA
        self.set_sort_mode(new_mode)
        return new_mode

    def set_copy_format(self, theme: str) -> bool:
        try:
            get_theme(theme)
        except MindspaceError as exc:
            self._fail(exc)
            return False
        self.context.copy_format = theme
        self.gateway.save_copy_format(theme)
        self.refresh()
        return True

    def set_copy_border(self, border: str) -> bool:
        try:
            get_border(border)
        except MindspaceError as exc:
            self._fail(exc)
            return False
        self.context.copy_border = border
        self.gateway.save_copy_border(border)
        self.refresh()
        return True

    def set_collapsed(self, map_id: int, collapsed: bool):
        self.context.collapse_state[map_id] = collapsed
        self.gateway.save_collapse_state(self.context.collapse_state)
        self.refresh()

    def toggle_collapse(self, map_id: int) -> bool:
        """Collapse or expand a map's children; returns the new collapsed flag."""
        collapsed = not self.context.collapse_state.get(map_id, False)
        self.set_collapsed(map_id, collapsed)
        return collapsed

    def set_sidebar_width(self, width: float) -> int:
        self.context.sidebar_width = clamp_sidebar_width(width)
        self.gateway.save_sidebar_width(self.context.sidebar_width)
        return self.context.sidebar_width

    # ==================== Queries & Rendering ====================

    def get_mind_map_data(self) -> dict:
        """The active map's tree in its persisted form."""
        return self._tree().to_dict()

    def selected_node_ids(self) -> Set[str]:
        return set(self._tree().selection)

    def render_preview(self) -> RenderResult:
        return render(self._tree(), self.context.copy_format, self.context.copy_border)

    def copy_text(self) -> str:
        """Text placed on the clipboard; identical to the preview text."""
        return self.render_preview().text

    def render_map_list(self) -> List[SidebarItem]:
        items = []
        for listed in self.registry.list(self.context.sort_mode, self.context.collapse_state):
            active = listed.meta.id == self.context.active_map_id
            if not listed.has_children:
                toggle = ""
            else:
                toggle = COLLAPSED_TOGGLE if listed.collapsed else EXPANDED_TOGGLE
            items.append(SidebarItem(
                map_id=listed.meta.id,
                name=listed.meta.name,
                depth=listed.depth,
                is_child=listed.depth > 0,
                active=active,
                icon=ACTIVE_ICON if active else "",
                toggle=toggle,
                indent_px=BASE_INDENT_PX + INDENT_STEP_PX * listed.depth,
            ))
        return items

    def top_level_items(self) -> List[SidebarItem]:
        return [item for item in self.sidebar_items if not item.is_child]

    def child_items(self) -> List[SidebarItem]:
        return [item for item in self.sidebar_items if item.is_child]

    def refresh(self):
        """Recompute the map list and the preview."""
        self.sidebar_items = self.render_map_list()
        self.preview = self.render_preview() if self.tree is not None else None
        if self.on_render:
            self.on_render(self)

    # ==================== Internals ====================

    def _tree(self) -> MindMapTree:
        if self.tree is None:
            raise InvalidOperation("edit map", "no map is active")
        return self.tree

    def _kept(self, tree: MindMapTree) -> bool:
        """False when an edit was dropped because its map could not be saved."""
        return self.tree is tree

    def _focus_id(self) -> str:
        tree = self._tree()
        return tree.selected_id or tree.root.id

    def _fail(self, exc: MindspaceError) -> None:
        self.last_error = exc
        logger.warning("%s", exc)
