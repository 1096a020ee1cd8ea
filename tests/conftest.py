"""Shared fixtures for the persistence engine tests."""

import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import settings
from statsdb import Database, Patcher


@pytest.fixture(autouse=True)
def local_settings(tmp_path, monkeypatch):
    """Keep the local settings file inside the test's temp directory"""
    monkeypatch.setattr(settings, 'SETTINGS_FILE', tmp_path / 'settings.json')
    settings.reset_cache()
    yield
    settings.reset_cache()


@pytest.fixture
def db():
    """Connected in-memory SQLite database"""
    database = Database('sqlite://')
    database.connect()
    yield database
    database.cleanup()


@pytest.fixture
def patched_db(db):
    """In-memory database with the bundled patches applied"""
    Patcher(db).run()
    return db
