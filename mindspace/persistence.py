"""Persistence gateway between the in-memory workspace and the key/value store.

All JSON encoding and decoding happens here. Reads of structured values
raise CorruptState when the stored text cannot be parsed; reads of simple
settings fall back to their default and log a warning.
"""

import json
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from mindspace.database import Database
from mindspace.errors import CorruptState
from mindspace.icons import BORDERS, DEFAULT_BORDER, DEFAULT_THEME, THEMES
from mindspace.keys import (
    COLLAPSE_STATE_KEY, COPY_BORDER_KEY, COPY_FORMAT_KEY, ID_COUNTER_KEY,
    LAST_ACTIVE_KEY, LEFT_SIDEBAR_WIDTH_KEY, META_KEY, SORT_MODE_KEY, data_key,
)
from mindspace.migrations import MIGRATIONS, apply_migrations
from mindspace.registry import MapMeta, SortMode
from mindspace.tree import MindMapTree

logger = logging.getLogger(__name__)

DEFAULT_SIDEBAR_WIDTH = 240
MIN_SIDEBAR_WIDTH = 160
MAX_SIDEBAR_WIDTH = 480


class PersistenceGateway:
    """Versioned load/save of registry, trees and settings."""

    def __init__(self, db: Database):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator["PersistenceGateway"]:
        with self.db.transaction():
            yield self

    def run_migrations(self) -> List[int]:
        """Apply pending migrations; returns the applied versions."""
        return apply_migrations(self.db, MIGRATIONS)

    # ==================== Registry ====================

    def load_meta(self) -> List[MapMeta]:
        """Load the map list; an absent list loads as empty."""
        raw = self.db.get_item(META_KEY)
        if raw is None:
            return []
        data = self._decode(META_KEY, raw)
        if not isinstance(data, list):
            raise CorruptState(META_KEY, "map list is not a list")
        try:
            return [MapMeta.from_dict(entry) for entry in data]
        except (TypeError, ValueError) as exc:
            raise CorruptState(META_KEY, str(exc)) from exc

    def save_meta(self, metas: List[MapMeta]):
        self.db.set_item(META_KEY, json.dumps([m.to_dict() for m in metas], ensure_ascii=False))

    def load_counter(self) -> int:
        """Highest map id handed out so far."""
        raw = self.db.get_item(ID_COUNTER_KEY)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring invalid id counter %r", raw)
            return 0

    def save_counter(self, value: int):
        self.db.set_item(ID_COUNTER_KEY, str(value))

    def reset_meta(self):
        """Drop the map list (used when it is corrupt)."""
        self.db.remove_item(META_KEY)

    # ==================== Trees ====================

    def load_tree(self, map_id: int) -> Optional[MindMapTree]:
        """Load the tree of a map, or None if it was never saved."""
        key = data_key(map_id)
        raw = self.db.get_item(key)
        if raw is None:
            return None
        return MindMapTree.from_dict(self._decode(key, raw), key=key)

    def save_tree(self, map_id: int, tree: MindMapTree):
        self.db.set_item(data_key(map_id), json.dumps(tree.to_dict(), ensure_ascii=False))
        tree.dirty = False

    def delete_tree(self, map_id: int):
        self.db.remove_item(data_key(map_id))

    # ==================== Pointers & Settings ====================

    def load_last_active_id(self) -> Optional[int]:
        raw = self.db.get_item(LAST_ACTIVE_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring invalid last active id %r", raw)
            return None

    def save_last_active_id(self, map_id: int):
        self.db.set_item(LAST_ACTIVE_KEY, str(map_id))

    def load_sort_mode(self) -> SortMode:
        raw = self.db.get_item(SORT_MODE_KEY)
        if raw is None:
            return SortMode.NONE
        try:
            return SortMode(raw)
        except ValueError:
            logger.warning("Ignoring invalid sort mode %r", raw)
            return SortMode.NONE

    def save_sort_mode(self, mode: SortMode):
        self.db.set_item(SORT_MODE_KEY, SortMode(mode).value)

    def load_collapse_state(self) -> Dict[int, bool]:
        raw = self.db.get_item(COLLAPSE_STATE_KEY)
        if raw is None:
            return {}
        data = self._decode(COLLAPSE_STATE_KEY, raw)
        if not isinstance(data, dict):
            raise CorruptState(COLLAPSE_STATE_KEY, "collapse state is not an object")
        state = {}
        for key, value in data.items():
            try:
                state[int(key)] = bool(value)
            except ValueError:
                logger.warning("Ignoring collapse entry for invalid map id %r", key)
        return state

    def save_collapse_state(self, state: Dict[int, bool]):
        self.db.set_item(
            COLLAPSE_STATE_KEY,
            json.dumps({str(k): bool(v) for k, v in state.items()})
        )

    def load_copy_format(self) -> str:
        return self._load_choice(COPY_FORMAT_KEY, THEMES, DEFAULT_THEME)

    def save_copy_format(self, theme: str):
        self.db.set_item(COPY_FORMAT_KEY, theme)

    def load_copy_border(self) -> str:
        return self._load_choice(COPY_BORDER_KEY, BORDERS, DEFAULT_BORDER)

    def save_copy_border(self, border: str):
        self.db.set_item(COPY_BORDER_KEY, border)

    def load_sidebar_width(self) -> int:
        raw = self.db.get_item(LEFT_SIDEBAR_WIDTH_KEY)
        if raw is None:
            return DEFAULT_SIDEBAR_WIDTH
        try:
            return clamp_sidebar_width(float(raw))
        except ValueError:
            logger.warning("Ignoring invalid sidebar width %r", raw)
            return DEFAULT_SIDEBAR_WIDTH

    def save_sidebar_width(self, width: int):
        self.db.set_item(LEFT_SIDEBAR_WIDTH_KEY, str(clamp_sidebar_width(width)))

    # ==================== Internals ====================

    @staticmethod
    def _decode(key: str, raw: str):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise CorruptState(key, str(exc)) from exc

    def _load_choice(self, key: str, choices, default: str) -> str:
        raw = self.db.get_item(key)
        if raw is None:
            return default
        if raw not in choices:
            logger.warning("Ignoring unknown value %r for %s", raw, key)
            return default
        return raw


def clamp_sidebar_width(width: float) -> int:
    """Clamp a sidebar width to the supported range."""
    return int(max(MIN_SIDEBAR_WIDTH, min(MAX_SIDEBAR_WIDTH, width)))
