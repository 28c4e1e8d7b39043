"""One-time migrations of the persisted workspace layout.

Each migration declares the keys it reads and a pure transform from a
snapshot of those keys to a dict of updates (a None value deletes the key).
A migration runs at most once: its flag key is set to "1" in the same
transaction as its updates, and it is skipped whenever the flag is present.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from mindspace.database import Database
from mindspace.errors import CorruptState
from mindspace.keys import (
    ID_COUNTER_KEY, LAST_ACTIVE_KEY, LEGACY_DATA_KEY, META_KEY,
    MIGRATED_V3_KEY, MIGRATED_V4_KEY, data_key,
)
from mindspace.registry import DEFAULT_MAP_NAME
from mindspace.tree import MindMapTree

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Optional[str]]
Transform = Callable[[Snapshot], Snapshot]


@dataclass(frozen=True)
class Migration:
    """A versioned, flag-guarded transform of persisted values."""
    version: int
    flag_key: str
    keys: Tuple[str, ...]
    transform: Transform
    description: str = ""


def import_legacy_document(snapshot: Snapshot) -> Snapshot:
    """Adopt a single-document workspace as map 1."""
    legacy = snapshot.get(LEGACY_DATA_KEY)
    if legacy is None:
        return {}
    existing = snapshot.get(META_KEY)
    if existing not in (None, "", "[]"):
        return {}

    try:
        MindMapTree.from_dict(json.loads(legacy), key=LEGACY_DATA_KEY)
    except (ValueError, CorruptState) as exc:
        logger.warning("Legacy document is unreadable, leaving it in place: %s", exc)
        return {}

    meta = [{
        "id": 1,
        "name": DEFAULT_MAP_NAME,
        "parentId": None,
        "order": 0,
        "createdAt": "",
        "updatedAt": "",
    }]
    return {
        META_KEY: json.dumps(meta, ensure_ascii=False),
        data_key(1): legacy,
        ID_COUNTER_KEY: "1",
        LAST_ACTIVE_KEY: "1",
        LEGACY_DATA_KEY: None,
    }


def _map_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise CorruptState(META_KEY, f"invalid {field} {value!r}")
    try:
        return int(value)
    except ValueError:
        raise CorruptState(META_KEY, f"invalid {field} {value!r}") from None


def _has_order(entry: Dict) -> bool:
    order = entry.get("order")
    return not isinstance(order, bool) and isinstance(order, (int, float))


def backfill_parent_and_order(snapshot: Snapshot) -> Snapshot:
    """Give every map entry a parentId and a numeric order.

    A missing order is placed after the highest order among its siblings.
    """
    raw = snapshot.get(META_KEY)
    if raw is None:
        return {}
    try:
        metas = json.loads(raw)
    except ValueError as exc:
        raise CorruptState(META_KEY, str(exc)) from exc
    if not isinstance(metas, list) or not all(isinstance(m, dict) for m in metas):
        raise CorruptState(META_KEY, "map list is not a list of objects")

    changed = False
    parents: List[Optional[int]] = []
    for entry in metas:
        _map_id(entry.get("id"), "id")
        if "parentId" not in entry:
            entry["parentId"] = None
            changed = True
        parent = entry["parentId"]
        parents.append(None if parent is None else _map_id(parent, "parentId"))

    highest: Dict[Optional[int], float] = {}
    for entry, parent in zip(metas, parents):
        if _has_order(entry):
            highest[parent] = max(highest.get(parent, entry["order"]), entry["order"])

    for entry, parent in zip(metas, parents):
        if not _has_order(entry):
            entry["order"] = highest[parent] + 1 if parent in highest else 0
            highest[parent] = entry["order"]
            changed = True

    if not changed:
        return {}
    return {META_KEY: json.dumps(metas, ensure_ascii=False)}


MIGRATIONS: List[Migration] = [
    Migration(
        version=3,
        flag_key=MIGRATED_V3_KEY,
        keys=(LEGACY_DATA_KEY, META_KEY),
        transform=import_legacy_document,
        description="import single-document workspace",
    ),
    Migration(
        version=4,
        flag_key=MIGRATED_V4_KEY,
        keys=(META_KEY,),
        transform=backfill_parent_and_order,
        description="back-fill parentId and order",
    ),
]


def apply_migrations(db: Database, migrations: Sequence[Migration] = MIGRATIONS) -> List[int]:
    """Run every pending migration in version order.

    Returns the versions that were applied. A transform that raises rolls
    back its own transaction and the error propagates; earlier migrations
    stay applied.
    """
    applied = []
    for migration in sorted(migrations, key=lambda m: m.version):
        with db.transaction():
            if db.get_item(migration.flag_key) == "1":
                continue
            snapshot = {key: db.get_item(key) for key in migration.keys}
            for key, value in migration.transform(snapshot).items():
                if value is None:
                    db.remove_item(key)
                else:
                    db.set_item(key, value)
            db.set_item(migration.flag_key, "1")
        logger.info("Applied migration v%d (%s)", migration.version, migration.description)
        applied.append(migration.version)
    return applied
