"""
Pytest configuration and fixtures.
"""
import os
import sys
import tempfile

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tubesuggest.db.database import Database


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database with all tables."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    db = Database(db_path)
    db.connect()
    db.ensure_tables()
    yield db
    db.close()
    os.unlink(db_path)
