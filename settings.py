"""
Local Settings Persistence

Keeps a small JSON file next to the data directory so values the engine
needs before (or without) the remote database survive restarts.

The schema version of every database the host has patched is mirrored here,
keyed by the database URL (password hidden). It is only consulted when the
remote settings table cannot be read; a version recorded for one database
never stands in for another.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from config import config

logger = logging.getLogger(__name__)

# Settings file location (in data directory, not committed to git)
SETTINGS_FILE = Path(config.DATA_DIR) / "settings.json"

# Key holding the {database url: schema version} mirror
SCHEMA_VERSIONS_KEY = "schema_versions"

# Default settings
DEFAULTS = {
    SCHEMA_VERSIONS_KEY: {},
}

# In-memory cache to avoid reading file on every call
_settings_cache: Optional[Dict[str, Any]] = None


def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """Load settings from file, returning defaults if file doesn't exist.

    Uses in-memory cache to avoid reading file on every call.
    """
    global _settings_cache

    if _settings_cache is not None and not force_reload:
        return _settings_cache.copy()

    if not SETTINGS_FILE.exists():
        logger.info("No local settings file found, using defaults")
        _settings_cache = DEFAULTS.copy()
        return _settings_cache.copy()

    try:
        with open(SETTINGS_FILE, 'r') as f:
            settings = json.load(f)
        logger.debug(f"Loaded settings from {SETTINGS_FILE}")
        merged = DEFAULTS.copy()
        merged.update(settings)
        _settings_cache = merged
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load settings: {e}")
        _settings_cache = DEFAULTS.copy()
    return _settings_cache.copy()


def save_settings(settings: Dict[str, Any]) -> bool:
    """Save settings to file and update cache."""
    global _settings_cache
    try:
        SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)

        with open(SETTINGS_FILE, 'w') as f:
            json.dump(settings, f, indent=2)
        logger.debug(f"Saved settings to {SETTINGS_FILE}")
        _settings_cache = settings.copy()
        return True
    except OSError as e:
        logger.error(f"Failed to save settings: {e}")
        return False


def _schema_versions(settings: Dict[str, Any]) -> Dict[str, Any]:
    versions = settings.get(SCHEMA_VERSIONS_KEY)
    if not isinstance(versions, dict):
        if versions is not None:
            logger.warning(f"Ignoring malformed {SCHEMA_VERSIONS_KEY} entry: {versions!r}")
        return {}
    return versions


def get_schema_version(database: str) -> Optional[int]:
    """
    Mirrored schema version of one database.

    Returns:
        The recorded version, or None if this database was never recorded
        (or the entry is unreadable).
    """
    value = _schema_versions(load_settings()).get(database)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unreadable local schema version for {database}: {value!r}")
        return None


def set_schema_version(database: str, version: int) -> bool:
    """Record the schema version of one database and save."""
    settings = load_settings()
    versions = dict(_schema_versions(settings))
    versions[database] = int(version)
    settings[SCHEMA_VERSIONS_KEY] = versions
    return save_settings(settings)


def reset_cache() -> None:
    """Drop the in-memory cache so the next read goes to disk."""
    global _settings_cache
    _settings_cache = None
