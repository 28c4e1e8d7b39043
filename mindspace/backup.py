"""Backup archives for a mindspace store.

An archive is a .tar.gz holding ``manifest.json`` and a consistent snapshot
of the SQLite store at ``data/mindspace.db`` (plus, optionally, the exports
folder). Used by the ``mindspace backup`` command to move a workspace
between machines.
"""

from __future__ import annotations

import json
import logging
import platform
import shutil
import sqlite3
import sys
import tarfile
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from mindspace import __version__
from mindspace.database import get_data_dir, get_db_path
from mindspace.keys import DATA_KEY_PREFIX, META_KEY

logger = logging.getLogger(__name__)

ARCHIVE_DB = "data/mindspace.db"


@dataclass(frozen=True)
class Manifest:
    created_at: str
    hostname: str
    platform: str
    python: str
    version: str


def _sqlite_consistent_copy(src_db: Path, dst_db: Path) -> None:
    """Create a consistent single-file copy of an SQLite database.

    Uses sqlite3 backup API. This avoids needing to also copy -wal/-shm files.
    """
    if not src_db.exists():
        raise FileNotFoundError(str(src_db))

    dst_db.parent.mkdir(parents=True, exist_ok=True)

    src = sqlite3.connect(f"file:{src_db.as_posix()}?mode=ro", uri=True)
    try:
        dst = sqlite3.connect(dst_db.as_posix())
        try:
            src.backup(dst)
            dst.commit()
        finally:
            dst.close()
    finally:
        src.close()


def _sqlite_open_ro(db_path: Path) -> sqlite3.Connection:
    return sqlite3.connect(f"file:{db_path.as_posix()}?mode=ro", uri=True)


def _sqlite_integrity_ok(conn: sqlite3.Connection) -> bool:
    row = conn.execute("PRAGMA integrity_check").fetchone()
    return bool(row) and str(row[0]).lower() == "ok"


def store_counts(conn: sqlite3.Connection) -> dict:
    """Count keys, registered maps and saved trees; -1 when unreadable."""
    out: dict[str, int] = {}
    try:
        out["keys"] = int(conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0])
        out["trees"] = int(conn.execute(
            "SELECT COUNT(*) FROM kv WHERE substr(key, 1, ?) = ?",
            (len(DATA_KEY_PREFIX), DATA_KEY_PREFIX)
        ).fetchone()[0])
        row = conn.execute("SELECT value FROM kv WHERE key = ?", (META_KEY,)).fetchone()
    except sqlite3.Error:
        return {"keys": -1, "trees": -1, "maps": -1}

    try:
        meta = json.loads(row[0]) if row else []
        out["maps"] = len(meta) if isinstance(meta, list) else -1
    except ValueError:
        out["maps"] = -1
    return out


def _report(title: str, lines: list[str], ok: bool, counts: dict) -> None:
    print(title)
    for line in lines:
        print(f"  {line}")
    print(f"  SQLite integrity_check: {'OK' if ok else 'FAILED'}")
    print(f"  Counts: maps={counts.get('maps')} trees={counts.get('trees')} keys={counts.get('keys')}")


def verify_local(db_path: Optional[Path] = None) -> int:
    """Verify a local store; returns a process exit status."""
    db_path = Path(db_path) if db_path else get_db_path()
    if not db_path.exists():
        print(f"No store found at {db_path}")
        return 2

    conn = _sqlite_open_ro(db_path)
    try:
        ok = _sqlite_integrity_ok(conn)
        counts = store_counts(conn)
    finally:
        conn.close()

    _report("Local mindspace store verification", [f"Store: {db_path}"], ok, counts)
    return 0 if ok and counts["maps"] >= 0 else 2


def verify_archive(archive_path: Path) -> int:
    """Verify a backup archive without importing it."""
    archive_path = Path(archive_path).expanduser().resolve()
    if not archive_path.exists():
        print(f"Archive not found: {archive_path}")
        return 2

    with tempfile.TemporaryDirectory(prefix="mindspace-verify-") as td:
        td_path = Path(td)
        with tarfile.open(archive_path, "r:gz") as tf:
            tf.extractall(td_path, filter="data")

        db_path = td_path / ARCHIVE_DB
        if not db_path.exists():
            print(f"Archive is missing {ARCHIVE_DB}")
            return 2

        manifest = None
        manifest_path = td_path / "manifest.json"
        if manifest_path.exists():
            try:
                manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            except ValueError:
                logger.warning("Archive manifest is unreadable")

        conn = _sqlite_open_ro(db_path)
        try:
            ok = _sqlite_integrity_ok(conn)
            counts = store_counts(conn)
        finally:
            conn.close()

        lines = [f"Archive: {archive_path}"]
        if manifest:
            lines.append(f"Created: {manifest.get('created_at', 'unknown')}")
            lines.append(f"Source host: {manifest.get('hostname', 'unknown')}")
        _report("mindspace archive verification", lines, ok, counts)
        return 0 if ok and counts["maps"] >= 0 else 2


def export_archive(out_path: Path, db_path: Optional[Path] = None,
                   include_exports: bool = False) -> Path:
    """Write a backup archive of the store to out_path."""
    db_path = Path(db_path) if db_path else get_db_path()
    if not db_path.exists():
        raise FileNotFoundError(f"No store found at {db_path}")

    out_path = Path(out_path).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="mindspace-backup-") as td:
        staging = Path(td)

        manifest = Manifest(
            created_at=datetime.now().isoformat(timespec="seconds"),
            hostname=platform.node(),
            platform=platform.platform(),
            python=sys.version.replace("\n", " "),
            version=__version__,
        )
        (staging / "manifest.json").write_text(
            json.dumps(asdict(manifest), indent=2, sort_keys=True),
            encoding="utf-8",
        )

        _sqlite_consistent_copy(db_path, staging / ARCHIVE_DB)

        exports_dir = get_data_dir() / "exports"
        if include_exports and exports_dir.exists():
            shutil.copytree(exports_dir, staging / "data" / "exports", dirs_exist_ok=True)

        with tarfile.open(out_path, "w:gz") as tf:
            tf.add(staging / "manifest.json", arcname="manifest.json")
            tf.add(staging / "data", arcname="data")

    logger.info("Wrote backup archive %s", out_path)
    return out_path


def import_archive(archive_path: Path, db_path: Optional[Path] = None, *,
                   overwrite: bool = False) -> Path:
    """Install the store from a backup archive.

    An existing store is only replaced when overwrite is set; it is then
    moved to a timestamped safety folder next to it first.
    """
    archive_path = Path(archive_path).expanduser().resolve()
    if not archive_path.exists():
        raise FileNotFoundError(f"Archive not found: {archive_path}")

    target_db = Path(db_path) if db_path else get_db_path()

    with tempfile.TemporaryDirectory(prefix="mindspace-import-") as td:
        td_path = Path(td)
        with tarfile.open(archive_path, "r:gz") as tf:
            tf.extractall(td_path, filter="data")

        extracted_db = td_path / ARCHIVE_DB
        if not extracted_db.exists():
            raise FileNotFoundError(f"Archive is missing {ARCHIVE_DB}")

        if target_db.exists():
            if not overwrite:
                raise FileExistsError(
                    f"Target store already exists at {target_db}. "
                    "Re-run with --overwrite to replace it (a safety copy will be kept)."
                )
            safety_dir = target_db.parent / "import-backups" / datetime.now().strftime("%Y%m%d_%H%M%S")
            safety_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(target_db), str(safety_dir / target_db.name))
            for suffix in ("-wal", "-shm"):
                sidecar = target_db.with_name(target_db.name + suffix)
                if sidecar.exists():
                    sidecar.unlink()

        target_db.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(extracted_db, target_db)

        extracted_exports = td_path / "data" / "exports"
        if extracted_exports.exists():
            shutil.copytree(extracted_exports, get_data_dir() / "exports", dirs_exist_ok=True)

    logger.info("Imported store from %s into %s", archive_path, target_db)
    return target_db
