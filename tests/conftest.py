"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from zkpool.config import reset_settings
from zkpool.crypto.hasher import Sha256FieldHasher
from zkpool.storage.database import DatabaseManager, reset_db_manager


@pytest.fixture
def hasher():
    """Default field hasher."""
    return Sha256FieldHasher()


@pytest.fixture
def temp_db(tmp_path):
    """Database manager over a temporary SQLite file."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'test.db'}")
    manager.create_tables()
    yield manager
    manager.engine.dispose()


@pytest.fixture(autouse=True)
def _reset_globals():
    """Drop cached settings and database manager between tests."""
    yield
    reset_settings()
    reset_db_manager()

