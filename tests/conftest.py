"""
Shared fixtures: a connected sink over a temporary SQLite file.
"""

import tempfile
from pathlib import Path

import pytest

from indexer.content_indexer.apply.sink import RelationalSink


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def db_path(data_dir):
    return str(Path(data_dir) / "content.db")


@pytest.fixture
def sink(db_path):
    """Connected sink with the projected schema."""
    sink = RelationalSink(db_path, wal_mode=False)
    sink.connect()
    sink.create_schema()
    yield sink
    sink.close()
