"""
Pytest configuration and fixtures.

Backend modules are imported by bare name, the same way they import each other.
"""
import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).parent.parent / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import config
import database


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the backend at a fresh SQLite file."""
    path = tmp_path / "dashboard.db"
    monkeypatch.setattr(config, "DATABASE_URL", str(path))
    database.init_db()
    return path


@pytest.fixture
def conn(db_path):
    with database.get_db() as connection:
        yield connection
