"""Unit tests for the persistence gateway."""

import json

import pytest

from mindspace.errors import CorruptState
from mindspace.keys import (
    COLLAPSE_STATE_KEY, COPY_BORDER_KEY, COPY_FORMAT_KEY, ID_COUNTER_KEY,
    LAST_ACTIVE_KEY, LEFT_SIDEBAR_WIDTH_KEY, META_KEY, SORT_MODE_KEY, data_key,
)
from mindspace.persistence import (
    DEFAULT_SIDEBAR_WIDTH, MAX_SIDEBAR_WIDTH, MIN_SIDEBAR_WIDTH, clamp_sidebar_width,
)
from mindspace.registry import MapMeta, SortMode
from mindspace.tree import ROOT_ID, MindMapTree


class TestMeta:
    """Test cases for the map list."""

    def test_absent_is_empty(self, gateway):
        assert gateway.load_meta() == []

    def test_save_and_load(self, gateway, db):
        metas = [MapMeta(id=1, name="マップ"), MapMeta(id=2, name="b", parent_id=1, order=1)]
        gateway.save_meta(metas)
        assert gateway.load_meta() == metas
        # Stored as readable JSON with camelCase fields.
        stored = json.loads(db.get_item(META_KEY))
        assert stored[1]["parentId"] == 1
        assert "マップ" in db.get_item(META_KEY)

    @pytest.mark.parametrize("raw", ["{not json", '{"a": 1}', '[{"id": null}]', "[1]"])
    def test_corrupt(self, gateway, db, raw):
        db.set_item(META_KEY, raw)
        with pytest.raises(CorruptState) as exc_info:
            gateway.load_meta()
        assert exc_info.value.key == META_KEY

    def test_counter(self, gateway, db):
        assert gateway.load_counter() == 0
        gateway.save_counter(7)
        assert db.get_item(ID_COUNTER_KEY) == "7"
        assert gateway.load_counter() == 7

    def test_invalid_counter_reads_zero(self, gateway, db):
        db.set_item(ID_COUNTER_KEY, "seven")
        assert gateway.load_counter() == 0


class TestTrees:
    """Test cases for tree storage."""

    def test_absent_tree_is_none(self, gateway):
        assert gateway.load_tree(1) is None

    def test_save_clears_dirty(self, gateway, db):
        tree = MindMapTree()
        tree.add_child(ROOT_ID, "x")
        assert tree.dirty
        gateway.save_tree(1, tree)
        assert not tree.dirty
        assert db.get_item(data_key(1)) is not None
        assert gateway.load_tree(1).to_dict() == tree.to_dict()

    def test_corrupt_tree(self, gateway, db):
        db.set_item(data_key(1), "[[[")
        with pytest.raises(CorruptState):
            gateway.load_tree(1)

    def test_delete_tree(self, gateway):
        gateway.save_tree(1, MindMapTree())
        gateway.delete_tree(1)
        assert gateway.load_tree(1) is None


class TestSettings:
    """Test cases for pointers and display settings."""

    def test_last_active(self, gateway, db):
        assert gateway.load_last_active_id() is None
        gateway.save_last_active_id(3)
        assert gateway.load_last_active_id() == 3
        db.set_item(LAST_ACTIVE_KEY, "x")
        assert gateway.load_last_active_id() is None

    def test_sort_mode(self, gateway, db):
        assert gateway.load_sort_mode() == SortMode.NONE
        gateway.save_sort_mode(SortMode.ALPHA)
        assert db.get_item(SORT_MODE_KEY) == "alpha"
        assert gateway.load_sort_mode() == SortMode.ALPHA
        db.set_item(SORT_MODE_KEY, "random")
        assert gateway.load_sort_mode() == SortMode.NONE

    def test_collapse_state(self, gateway, db):
        assert gateway.load_collapse_state() == {}
        gateway.save_collapse_state({1: True, 2: False})
        assert json.loads(db.get_item(COLLAPSE_STATE_KEY)) == {"1": True, "2": False}
        assert gateway.load_collapse_state() == {1: True, 2: False}

    def test_collapse_state_not_object(self, gateway, db):
        db.set_item(COLLAPSE_STATE_KEY, "[1]")
        with pytest.raises(CorruptState):
            gateway.load_collapse_state()

    def test_collapse_state_skips_bad_ids(self, gateway, db):
        db.set_item(COLLAPSE_STATE_KEY, '{"1": true, "x": true}')
        assert gateway.load_collapse_state() == {1: True}

    def test_copy_format_and_border(self, gateway, db):
        assert gateway.load_copy_format() == "simple"
        assert gateway.load_copy_border() == "border"
        gateway.save_copy_format("hiyoko")
        gateway.save_copy_border("none")
        assert gateway.load_copy_format() == "hiyoko"
        assert gateway.load_copy_border() == "none"

    def test_unknown_choice_falls_back(self, gateway, db):
        db.set_item(COPY_FORMAT_KEY, "sparkly")
        db.set_item(COPY_BORDER_KEY, "double")
        assert gateway.load_copy_format() == "simple"
        assert gateway.load_copy_border() == "border"

    def test_sidebar_width(self, gateway, db):
        assert gateway.load_sidebar_width() == DEFAULT_SIDEBAR_WIDTH
        gateway.save_sidebar_width(1000)
        assert gateway.load_sidebar_width() == MAX_SIDEBAR_WIDTH
        db.set_item(LEFT_SIDEBAR_WIDTH_KEY, "12")
        assert gateway.load_sidebar_width() == MIN_SIDEBAR_WIDTH
        db.set_item(LEFT_SIDEBAR_WIDTH_KEY, "wide")
        assert gateway.load_sidebar_width() == DEFAULT_SIDEBAR_WIDTH

    def test_clamp(self):
        assert clamp_sidebar_width(300.7) == 300
        assert clamp_sidebar_width(-5) == MIN_SIDEBAR_WIDTH
