"""Shared pytest fixtures for mindspace tests."""

import pytest

from mindspace.database import Database
from mindspace.persistence import PersistenceGateway
from mindspace.tree import ROOT_ID, MindMapTree
from mindspace.workspace import Workspace


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Point the data directory at a temporary folder."""
    path = tmp_path / "data"
    monkeypatch.setenv("MINDSPACE_DATA_DIR", str(path))
    return path


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "store.db"


@pytest.fixture
def db(db_path):
    """Open store, closed after the test."""
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def gateway(db):
    return PersistenceGateway(db)


@pytest.fixture
def workspace(db_path):
    """Fresh workspace on an empty store."""
    ws = Workspace.open(db_path)
    yield ws
    ws.gateway.db.close()


@pytest.fixture
def sample_tree():
    """Root with children A (A1, A2) and B (B1).

    Ids: A=n1, A1=n2, A2=n3, B=n4, B1=n5.
    """
    tree = MindMapTree()
    a = tree.add_child(ROOT_ID, "A")
    tree.add_child(a, "A1")
    tree.add_child(a, "A2")
    b = tree.add_child(ROOT_ID, "B")
    tree.add_child(b, "B1")
    tree.dirty = False
    tree.select(ROOT_ID)
    return tree
