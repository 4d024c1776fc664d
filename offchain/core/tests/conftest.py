import pytest

from stela_core.db import StelaStore


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite store per test."""
    db = StelaStore(f"sqlite:///{tmp_path / 'stela.db'}")
    yield db
    db.close()
