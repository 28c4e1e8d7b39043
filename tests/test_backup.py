"""Tests for backup archives."""

import sqlite3
import tarfile

import pytest

from mindspace.backup import (
    ARCHIVE_DB, export_archive, import_archive, store_counts, verify_archive, verify_local,
)
from mindspace.workspace import Workspace


@pytest.fixture
def store(db_path):
    """A closed store with two maps and some content."""
    ws = Workspace.open(db_path)
    ws.add_node(text="backed up")
    ws.create_new(name="second")
    ws.close()
    return db_path


class TestExport:
    """Test cases for export_archive()."""

    def test_archive_layout(self, store, tmp_path):
        out = export_archive(tmp_path / "out" / "backup.tar.gz", store)
        assert out.exists()
        with tarfile.open(out, "r:gz") as tf:
            names = tf.getnames()
        assert "manifest.json" in names
        assert ARCHIVE_DB in names

    def test_missing_store(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            export_archive(tmp_path / "b.tar.gz", tmp_path / "missing.db")

    def test_include_exports(self, store, tmp_path, data_dir):
        (data_dir / "exports").mkdir(parents=True, exist_ok=True)
        (data_dir / "exports" / "map.md").write_text("# hi", encoding="utf-8")
        out = export_archive(tmp_path / "b.tar.gz", store, include_exports=True)
        with tarfile.open(out, "r:gz") as tf:
            assert "data/exports/map.md" in tf.getnames()


class TestVerify:
    """Test cases for verify_local() and verify_archive()."""

    def test_counts(self, store):
        conn = sqlite3.connect(str(store))
        try:
            counts = store_counts(conn)
        finally:
            conn.close()
        assert counts["maps"] == 2
        assert counts["trees"] == 2

    def test_verify_local(self, store, capsys):
        assert verify_local(store) == 0
        assert "maps=2" in capsys.readouterr().out

    def test_verify_local_missing(self, tmp_path):
        assert verify_local(tmp_path / "none.db") == 2

    def test_verify_archive(self, store, tmp_path, capsys):
        out = export_archive(tmp_path / "b.tar.gz", store)
        assert verify_archive(out) == 0
        assert "integrity_check: OK" in capsys.readouterr().out

    def test_verify_archive_missing(self, tmp_path):
        assert verify_archive(tmp_path / "nope.tar.gz") == 2


class TestImport:
    """Test cases for import_archive()."""

    def test_into_empty_location(self, store, tmp_path):
        archive = export_archive(tmp_path / "b.tar.gz", store)
        target = tmp_path / "restored" / "store.db"
        assert import_archive(archive, target) == target

        ws = Workspace.open(target)
        assert [m.name for m in ws.registry.all()][1] == "second"
        ws.switch_to(1)
        assert ws.tree.get("n1").text == "backed up"
        ws.close()

    def test_refuses_overwrite(self, store, tmp_path):
        archive = export_archive(tmp_path / "b.tar.gz", store)
        with pytest.raises(FileExistsError):
            import_archive(archive, store)

    def test_overwrite_keeps_safety_copy(self, store, tmp_path):
        archive = export_archive(tmp_path / "b.tar.gz", store)
        import_archive(archive, store, overwrite=True)
        safety = list((store.parent / "import-backups").glob("*/store.db"))
        assert len(safety) == 1
        assert store.exists()

    def test_missing_archive(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            import_archive(tmp_path / "none.tar.gz", tmp_path / "x.db")
