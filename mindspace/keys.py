"""Names of the persisted key/value entries."""

META_KEY = "mindmap-meta"
ID_COUNTER_KEY = "mindmap-id-counter"
LAST_ACTIVE_KEY = "mindmap-last-active-id"
DATA_KEY_PREFIX = "mindmap-data-"
SORT_MODE_KEY = "mindmap-sort-mode"
COLLAPSE_STATE_KEY = "mindmap-collapse-state"
LEFT_SIDEBAR_WIDTH_KEY = "mindmap_left_sidebar_width"
COPY_FORMAT_KEY = "mindmap-copy-format"
COPY_BORDER_KEY = "mindmap-copy-border"

# Single-document layout used before multi-map workspaces.
LEGACY_DATA_KEY = "mindmap-data"

MIGRATED_V3_KEY = "mindmap-migrated-v3"
MIGRATED_V4_KEY = "mindmap-migrated-v4"


def data_key(map_id: int) -> str:
    """Key holding the tree of map_id."""
    return f"{DATA_KEY_PREFIX}{map_id}"
