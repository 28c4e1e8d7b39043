"""Unit tests for the SQLite key/value store."""

import pytest

from mindspace.database import Database, get_data_dir, get_db_path


class TestItems:
    """Test cases for get/set/remove."""

    def test_missing_key_is_none(self, db):
        """Unknown keys read as None."""
        assert db.get_item("nope") is None

    def test_set_and_get(self, db):
        """A stored value reads back unchanged."""
        db.set_item("k", "中心テーマ")
        assert db.get_item("k") == "中心テーマ"

    def test_set_replaces(self, db):
        """Setting a key twice keeps the last value."""
        db.set_item("k", "1")
        db.set_item("k", "2")
        assert db.get_item("k") == "2"

    def test_remove(self, db):
        """Removed keys read as None; removing twice is harmless."""
        db.set_item("k", "v")
        db.remove_item("k")
        db.remove_item("k")
        assert db.get_item("k") is None

    def test_non_string_value_rejected(self, db):
        """Only strings can be stored."""
        with pytest.raises(TypeError):
            db.set_item("k", 5)

    def test_keys_with_prefix_is_case_sensitive(self, db):
        """Prefix filtering matches exactly."""
        db.set_item("mindmap-data-1", "x")
        db.set_item("mindmap-data-2", "x")
        db.set_item("MINDMAP-data-3", "x")
        db.set_item("mindmap-meta", "x")
        assert db.keys("mindmap-data-") == ["mindmap-data-1", "mindmap-data-2"]
        assert len(db.keys()) == 4

    def test_clear(self, db):
        db.set_item("a", "1")
        db.clear()
        assert db.keys() == []

    def test_values_survive_reopen(self, db_path):
        """Values are written to disk."""
        first = Database(db_path)
        first.set_item("k", "v")
        first.close()
        second = Database(db_path)
        assert second.get_item("k") == "v"
        second.close()


class TestTransactions:
    """Test cases for transaction()."""

    def test_commit(self, db):
        with db.transaction():
            db.set_item("a", "1")
            db.set_item("b", "2")
        assert db.get_item("a") == "1"
        assert db.get_item("b") == "2"

    def test_rollback_on_error(self, db):
        """An exception discards every write of the transaction."""
        db.set_item("a", "old")
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.set_item("a", "new")
                db.set_item("b", "2")
                raise RuntimeError("boom")
        assert db.get_item("a") == "old"
        assert db.get_item("b") is None

    def test_nested_joins_outer(self, db):
        """An error in an inner block rolls back the outer one too."""
        with pytest.raises(ValueError):
            with db.transaction():
                db.set_item("outer", "1")
                with db.transaction():
                    db.set_item("inner", "1")
                raise ValueError
        assert db.get_item("outer") is None
        assert db.get_item("inner") is None

    def test_usable_after_rollback(self, db):
        with pytest.raises(ValueError):
            with db.transaction():
                raise ValueError
        with db.transaction():
            db.set_item("k", "v")
        assert db.get_item("k") == "v"


class TestPaths:
    """Test cases for data directory resolution."""

    def test_data_dir_override(self, data_dir):
        """MINDSPACE_DATA_DIR selects the data directory."""
        assert get_data_dir() == data_dir
        assert (data_dir / "exports").is_dir()
        assert (data_dir / "backups").is_dir()

    def test_default_db_path(self, data_dir):
        assert get_db_path() == data_dir / "mindspace.db"
