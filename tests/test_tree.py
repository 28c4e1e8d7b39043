"""Unit tests for the mind map tree model."""

import pytest

from mindspace.errors import CorruptState, InvalidOperation
from mindspace.tree import (
    DEFAULT_NODE_TEXT, DEFAULT_ROOT_TEXT, ROOT_ID, Direction, MindMapTree,
)


class TestMutations:
    """Test cases for add/rename/delete."""

    def test_new_tree_has_root_selected(self):
        tree = MindMapTree()
        assert tree.root.text == DEFAULT_ROOT_TEXT
        assert tree.selection == {ROOT_ID}
        assert len(tree) == 1

    def test_add_child_selects_new_node(self):
        """A new child gets the next id, default text and the selection."""
        tree = MindMapTree()
        node_id = tree.add_child(ROOT_ID)
        assert node_id == "n1"
        assert tree.get(node_id).text == DEFAULT_NODE_TEXT
        assert tree.root.children == ["n1"]
        assert tree.selection == {"n1"}
        assert tree.dirty

    def test_add_sibling_inserts_after(self, sample_tree):
        """Siblings go directly after the reference node."""
        new_id = sample_tree.add_sibling("n2", "A1b")
        assert sample_tree.get("n1").children == ["n2", new_id, "n3"]
        assert sample_tree.selected_id == new_id

    def test_add_sibling_to_root_refused(self, sample_tree):
        with pytest.raises(InvalidOperation):
            sample_tree.add_sibling(ROOT_ID)

    def test_rename(self, sample_tree):
        sample_tree.rename("n1", "Alpha")
        assert sample_tree.get("n1").text == "Alpha"
        assert sample_tree.dirty

    def test_rename_same_text_is_noop(self, sample_tree):
        """Unchanged text does not mark the tree dirty."""
        sample_tree.rename("n1", "A")
        assert not sample_tree.dirty

    def test_delete_removes_subtree(self, sample_tree):
        """Deleting a node removes its descendants and selects the parent."""
        sample_tree.select("n2")
        sample_tree.delete("n1")
        assert "n1" not in sample_tree
        assert "n2" not in sample_tree
        assert "n3" not in sample_tree
        assert sample_tree.root.children == ["n4"]
        assert sample_tree.selection == {ROOT_ID}

    def test_delete_root_refused(self, sample_tree):
        with pytest.raises(InvalidOperation):
            sample_tree.delete(ROOT_ID)

    def test_unknown_node(self, sample_tree):
        with pytest.raises(InvalidOperation):
            sample_tree.get("missing")

    def test_on_change_called_for_mutations(self):
        calls = []
        tree = MindMapTree()
        tree.on_change = calls.append
        node_id = tree.add_child(ROOT_ID, "x")
        tree.rename(node_id, "y")
        tree.delete(node_id)
        assert len(calls) == 3

    def test_ids_never_reused_while_present(self, sample_tree):
        new_id = sample_tree.add_child(ROOT_ID)
        assert new_id == "n6"


class TestNavigation:
    """Test cases for keyboard navigation."""

    def test_parent_and_first_child(self, sample_tree):
        assert sample_tree.navigate(ROOT_ID, Direction.FIRST_CHILD) == "n1"
        assert sample_tree.navigate("n1", Direction.FIRST_CHILD) == "n2"
        assert sample_tree.navigate("n2", Direction.PARENT) == "n1"
        assert sample_tree.selection == {"n1"}

    def test_root_has_no_parent(self, sample_tree):
        """Moves without a target keep the current node."""
        assert sample_tree.navigate(ROOT_ID, Direction.PARENT) == ROOT_ID
        assert sample_tree.navigate(ROOT_ID, Direction.NEXT_SIBLING) == ROOT_ID

    def test_leaf_has_no_child(self, sample_tree):
        assert sample_tree.navigate("n5", Direction.FIRST_CHILD) == "n5"

    def test_siblings(self, sample_tree):
        assert sample_tree.navigate("n1", Direction.NEXT_SIBLING) == "n4"
        assert sample_tree.navigate("n4", Direction.PREV_SIBLING) == "n1"

    def test_vertical_move_crosses_parents(self, sample_tree):
        """The last child of A moves down to the first child of B."""
        assert sample_tree.navigate("n3", Direction.NEXT_SIBLING) == "n5"
        assert sample_tree.navigate("n5", Direction.PREV_SIBLING) == "n3"

    def test_edges_stay_put(self, sample_tree):
        assert sample_tree.navigate("n2", Direction.PREV_SIBLING) == "n2"
        assert sample_tree.navigate("n5", Direction.NEXT_SIBLING) == "n5"


class TestTraversal:
    """Test cases for walk/depth/copy."""

    def test_walk_is_preorder(self, sample_tree):
        order = [(node.id, depth) for node, depth in sample_tree.walk()]
        assert order == [
            (ROOT_ID, 0), ("n1", 1), ("n2", 2), ("n3", 2), ("n4", 1), ("n5", 2),
        ]

    def test_depth(self, sample_tree):
        assert sample_tree.depth(ROOT_ID) == 0
        assert sample_tree.depth("n5") == 2

    def test_copy_is_independent(self, sample_tree):
        clone = sample_tree.copy()
        clone.rename("n1", "changed")
        assert sample_tree.get("n1").text == "A"
        assert clone.to_dict()["root"]["children"][1] == sample_tree.to_dict()["root"]["children"][1]


class TestSerialization:
    """Test cases for to_dict/from_dict."""

    def test_to_dict_shape(self, sample_tree):
        data = sample_tree.to_dict()
        assert data["root"]["id"] == ROOT_ID
        assert data["root"]["text"] == DEFAULT_ROOT_TEXT
        first = data["root"]["children"][0]
        assert first == {
            "id": "n1",
            "text": "A",
            "children": [
                {"id": "n2", "text": "A1", "children": []},
                {"id": "n3", "text": "A2", "children": []},
            ],
        }

    def test_from_dict_restores_structure(self, sample_tree):
        restored = MindMapTree.from_dict(sample_tree.to_dict())
        assert restored.to_dict() == sample_tree.to_dict()
        assert restored.selection == {ROOT_ID}
        assert not restored.dirty

    def test_from_dict_fills_missing_ids(self):
        """Nodes without ids get fresh ids that do not clash."""
        data = {"root": {"text": "r", "children": [
            {"text": "x"},
            {"id": "n1", "text": "y"},
        ]}}
        tree = MindMapTree.from_dict(data)
        ids = tree.root.children
        assert ids[1] == "n1"
        assert ids[0] not in ("n1", ROOT_ID)
        assert tree.get(ids[0]).text == "x"

    def test_from_dict_root_id_normalized(self):
        tree = MindMapTree.from_dict({"root": {"id": "whatever", "text": "r"}})
        assert tree.root.id == ROOT_ID
        assert tree.root.text == "r"

    @pytest.mark.parametrize("data", [
        None,
        [],
        {},
        {"root": "text"},
        {"root": {"text": "r", "children": "x"}},
        {"root": {"text": "r", "children": [1]}},
        {"root": {"text": "r", "children": [{"id": "a"}, {"id": "a"}]}},
    ])
    def test_from_dict_rejects_malformed(self, data):
        with pytest.raises(CorruptState):
            MindMapTree.from_dict(data, key="mindmap-data-1")
