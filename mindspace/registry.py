"""Map registry: identity, hierarchy and ordering of the maps in a workspace.

The registry holds no state of its own. Every operation reads the persisted
map list, changes it and writes it back inside one store transaction.
"""

import locale
import logging
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from mindspace.errors import InvalidOperation, LastMapError, ValidationError
from mindspace.tree import MindMapTree

if TYPE_CHECKING:
    from mindspace.persistence import PersistenceGateway

logger = logging.getLogger(__name__)

DEFAULT_MAP_NAME = "新しいマップ"
COPY_SUFFIX = "のコピー"


class SortMode(str, Enum):
    """Display ordering of sibling maps."""
    NONE = "none"
    ALPHA = "alpha"


@dataclass
class MapMeta:
    """Registry entry describing one map."""
    id: int
    name: str = DEFAULT_MAP_NAME
    parent_id: Optional[int] = None
    order: float = 0
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parentId": self.parent_id,
            "order": self.order,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "MapMeta":
        if not isinstance(data, dict):
            raise ValueError("map entry is not an object")
        map_id = data.get("id")
        if isinstance(map_id, bool) or not isinstance(map_id, (int, str)):
            raise ValueError(f"invalid map id {map_id!r}")
        parent_id = data.get("parentId")
        order = data.get("order", 0)
        if isinstance(order, bool) or not isinstance(order, (int, float)):
            raise ValueError(f"invalid order {order!r}")
        return cls(
            id=int(map_id),
            name=str(data.get("name", DEFAULT_MAP_NAME)),
            parent_id=int(parent_id) if parent_id is not None else None,
            order=order,
            created_at=str(data.get("createdAt", "")),
            updated_at=str(data.get("updatedAt", "")),
        )


@dataclass
class ListedMap:
    """A map in display order, with its position in the hierarchy."""
    meta: MapMeta
    depth: int
    has_children: bool
    collapsed: bool


def collation_key(name: str):
    """Sort key for locale-aware, case- and accent-insensitive name ordering.

    Base letters decide first, so "éclair" sorts with the e's even in the
    C locale; accents, then case, only break ties.
    """
    normalized = unicodedata.normalize("NFKC", name)
    decomposed = unicodedata.normalize("NFKD", normalized)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return (
        locale.strxfrm(base.casefold()),
        locale.strxfrm(normalized.casefold()),
        locale.strxfrm(normalized),
    )


def sort_siblings(metas: List[MapMeta], sort_mode: SortMode) -> List[MapMeta]:
    """Order one sibling group; both modes are stable."""
    if sort_mode == SortMode.ALPHA:
        return sorted(metas, key=lambda m: collation_key(m.name))
    return sorted(metas, key=lambda m: m.order)


def _now() -> str:
    return datetime.now().isoformat()


class MapRegistry:
    """Create, rename, reparent, reorder and delete maps."""

    def __init__(self, gateway: "PersistenceGateway"):
        self.gateway = gateway

    # ==================== Queries ====================

    def all(self) -> List[MapMeta]:
        """All entries in storage order."""
        return self.gateway.load_meta()

    def get(self, map_id: int) -> MapMeta:
        """Get an entry by id."""
        return self._find(self.all(), map_id)

    def exists(self, map_id: int) -> bool:
        return any(m.id == map_id for m in self.all())

    def children_of(self, map_id: Optional[int],
                    sort_mode: SortMode = SortMode.NONE) -> List[MapMeta]:
        """Direct children of map_id (None for top-level maps)."""
        return sort_siblings([m for m in self.all() if m.parent_id == map_id], sort_mode)

    def top_level(self, sort_mode: SortMode = SortMode.NONE) -> List[MapMeta]:
        return self.children_of(None, sort_mode)

    def list(self, sort_mode: SortMode = SortMode.NONE,
             collapse_state: Optional[Mapping[int, bool]] = None) -> List[ListedMap]:
        """Entries in display order.

        Children follow directly after their parent and are left out while
        the parent is collapsed. Entries whose parent is missing are shown
        at the top level.
        """
        collapse_state = collapse_state or {}
        metas = self.all()
        ids = {m.id for m in metas}
        children: Dict[Optional[int], List[MapMeta]] = {}
        for meta in metas:
            parent = meta.parent_id if meta.parent_id in ids else None
            children.setdefault(parent, []).append(meta)

        result: List[ListedMap] = []
        seen = set()

        def visit(meta: MapMeta, depth: int, visible: bool):
            seen.add(meta.id)
            kids = [k for k in children.get(meta.id, []) if k.id not in seen]
            collapsed = bool(collapse_state.get(meta.id, False))
            if visible:
                result.append(ListedMap(meta=meta, depth=depth,
                                        has_children=bool(kids), collapsed=collapsed))
            for kid in sort_siblings(kids, sort_mode):
                if kid.id not in seen:
                    visit(kid, depth + 1, visible and not collapsed)

        for meta in sort_siblings(children.get(None, []), sort_mode):
            visit(meta, 0, True)
        # Entries caught in a parent cycle are never reached from the top.
        for meta in sort_siblings([m for m in metas if m.id not in seen], sort_mode):
            if meta.id not in seen:
                visit(meta, 0, True)
        return result

    # ==================== Mutations ====================

    def create(self, name: str = DEFAULT_MAP_NAME, parent_id: Optional[int] = None) -> MapMeta:
        """Create a new map entry with the next id from the counter."""
        name = name.strip() or DEFAULT_MAP_NAME
        with self.gateway.transaction():
            metas = self.all()
            if parent_id is not None:
                self._find(metas, parent_id)
            now = _now()
            meta = MapMeta(
                id=self._next_id(metas),
                name=name,
                parent_id=parent_id,
                order=self._next_order(metas, parent_id),
                created_at=now,
                updated_at=now,
            )
            metas.append(meta)
            self.gateway.save_meta(metas)
            self.gateway.save_counter(meta.id)
        logger.info("Created map %d '%s' (parent %s)", meta.id, meta.name, parent_id)
        return meta

    def duplicate(self, map_id: int) -> MapMeta:
        """Copy a map's content and metadata into a new entry next to it."""
        with self.gateway.transaction():
            metas = self.all()
            source = self._find(metas, map_id)
            tree = self.gateway.load_tree(source.id) or MindMapTree()
            now = _now()
            meta = MapMeta(
                id=self._next_id(metas),
                name=source.name + COPY_SUFFIX,
                parent_id=source.parent_id,
                order=self._next_order(metas, source.parent_id),
                created_at=now,
                updated_at=now,
            )
            metas.append(meta)
            self.gateway.save_meta(metas)
            self.gateway.save_counter(meta.id)
            self.gateway.save_tree(meta.id, tree.copy())
        logger.info("Duplicated map %d as %d '%s'", map_id, meta.id, meta.name)
        return meta

    def rename(self, map_id: int, name: str) -> MapMeta:
        """Rename a map; empty names are rejected and the old name kept."""
        stripped = name.strip()
        if not stripped:
            raise ValidationError("Map name must not be empty", field="name", value=name)
        with self.gateway.transaction():
            metas = self.all()
            meta = self._find(metas, map_id)
            if meta.name == stripped:
                return meta
            meta.name = stripped
            meta.updated_at = _now()
            self.gateway.save_meta(metas)
        logger.info("Renamed map %d to '%s'", map_id, stripped)
        return meta

    def delete(self, map_id: int) -> List[int]:
        """Delete a map, moving its children up to its parent.

        Returns the ids of the promoted children.
        """
        with self.gateway.transaction():
            metas = self.all()
            target = self._find(metas, map_id)
            if len(metas) <= 1:
                raise LastMapError(map_id)

            remaining = [m for m in metas if m.id != target.id]
            promoted = sort_siblings([m for m in remaining if m.parent_id == target.id], SortMode.NONE)
            for child in promoted:
                child.parent_id = target.parent_id
                child.order = self._next_order(remaining, target.parent_id, exclude=child.id)

            self.gateway.save_meta(remaining)
            self.gateway.delete_tree(target.id)
            collapse_state = self.gateway.load_collapse_state()
            if collapse_state.pop(target.id, None) is not None:
                self.gateway.save_collapse_state(collapse_state)
        logger.info("Deleted map %d, promoted %s", map_id, [c.id for c in promoted])
        return [c.id for c in promoted]

    def reparent(self, map_id: int, parent_id: Optional[int]) -> MapMeta:
        """Move a map under another parent (None for top level)."""
        with self.gateway.transaction():
            metas = self.all()
            meta = self._find(metas, map_id)
            if parent_id is not None:
                by_id = {m.id: m for m in metas}
                self._find(metas, parent_id)
                ancestor: Optional[int] = parent_id
                while ancestor is not None:
                    if ancestor == map_id:
                        raise InvalidOperation("reparent map", f"map {map_id} would become its own ancestor")
                    ancestor = by_id[ancestor].parent_id if ancestor in by_id else None
            if meta.parent_id == parent_id:
                return meta
            meta.parent_id = parent_id
            meta.order = self._next_order(metas, parent_id, exclude=map_id)
            meta.updated_at = _now()
            self.gateway.save_meta(metas)
        logger.info("Moved map %d under %s", map_id, parent_id)
        return meta

    def reorder(self, map_id: int, index: int) -> MapMeta:
        """Move a map to position index among its siblings and renumber them."""
        with self.gateway.transaction():
            metas = self.all()
            meta = self._find(metas, map_id)
            siblings = sort_siblings(
                [m for m in metas if m.parent_id == meta.parent_id and m.id != map_id],
                SortMode.NONE,
            )
            index = max(0, min(index, len(siblings)))
            siblings.insert(index, meta)
            for position, sibling in enumerate(siblings):
                sibling.order = position
            self.gateway.save_meta(metas)
        return meta

    def touch(self, map_id: int) -> MapMeta:
        """Refresh a map's updatedAt timestamp."""
        with self.gateway.transaction():
            metas = self.all()
            meta = self._find(metas, map_id)
            meta.updated_at = _now()
            self.gateway.save_meta(metas)
        return meta

    # ==================== Internals ====================

    @staticmethod
    def _find(metas: List[MapMeta], map_id: int) -> MapMeta:
        for meta in metas:
            if meta.id == map_id:
                return meta
        raise InvalidOperation("find map", f"no map with id {map_id}")

    def _next_id(self, metas: List[MapMeta]) -> int:
        highest = max((m.id for m in metas), default=0)
        return max(self.gateway.load_counter(), highest) + 1

    @staticmethod
    def _next_order(metas: List[MapMeta], parent_id: Optional[int],
                    exclude: Optional[int] = None) -> float:
        orders = [m.order for m in metas if m.parent_id == parent_id and m.id != exclude]
        return max(orders) + 1 if orders else 0
