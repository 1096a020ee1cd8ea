"""
Tests for persistence startup (connect, patch, open intake).

Run with: python -m pytest tests/test_app.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from app import load_manifest, start_persistence
from config import Config
from statsdb import ConnectionFailed, MigrationFailed, PatchManifest


@pytest.fixture
def cfg(tmp_path):
    return Config(
        DB_URL='sqlite://',
        DB_USER='',
        DB_PASSWORD='',
        DATA_DIR=str(tmp_path / 'data'),
        LOG_DIR=str(tmp_path / 'logs'),
        PATCH_DIR='',
    )


class TestStartPersistence:

    def test_connects_and_patches(self, cfg):
        db, intake = start_persistence(cfg)
        try:
            assert db.is_connected
            assert db.has_table('players')
            assert not intake.is_paused
        finally:
            db.cleanup()

    def test_connection_failure(self, cfg, tmp_path):
        cfg.DB_URL = f"sqlite:///{tmp_path / 'missing' / 'stats.db'}"
        with pytest.raises(ConnectionFailed):
            start_persistence(cfg)

    def test_failed_patch_closes_database(self, cfg):
        manifest = PatchManifest.from_mapping({1: "INSERT INTO no_such_table VALUES (1);"})
        with pytest.raises(MigrationFailed):
            start_persistence(cfg, manifest=manifest)


class TestLoadManifest:

    def test_bundled_by_default(self, cfg):
        assert load_manifest(cfg).has(1)

    def test_patch_dir_override(self, cfg, tmp_path):
        patch_dir = tmp_path / 'patches'
        patch_dir.mkdir()
        (patch_dir / '1.sql').write_text("CREATE TABLE custom (id INTEGER);")
        cfg.PATCH_DIR = str(patch_dir)

        manifest = load_manifest(cfg)
        assert manifest.versions() == [1]
        assert 'custom' in manifest.get(1)
