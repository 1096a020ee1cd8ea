"""
Database Patcher

Brings the remote schema up to date by applying numbered SQL patches
(1.sql, 2.sql, ...) exactly once each, in order, and records the schema
version after every patch so a restart resumes where it stopped.

Patch discovery probes for version+1 and stops at the first missing number,
so a gap in the sequence ends the run.

Usage:
    patcher = Patcher(db)
    patcher.run()                          # blocking, at startup

    future = patcher.run_in_background(intake)   # statistics paused meanwhile
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

import settings
from .errors import MigrationFailed, PersistenceError, TypeConversion
from .scripts import ScriptRunner
from .tables import SettingsTable

logger = logging.getLogger(__name__)

# Patches bundled with the package
DEFAULT_PATCH_DIR = Path(__file__).parent / "patches"


class PatchManifest:
    """
    The set of available patch scripts, keyed by patch id.

    Sequence patches use their version number as id ("1", "2", ...);
    maintenance patches use any other name.
    """

    def __init__(self, scripts: Optional[Mapping[Union[int, str], str]] = None):
        self._scripts: Dict[str, str] = {str(k): v for k, v in (scripts or {}).items()}

    @classmethod
    def from_mapping(cls, scripts: Mapping[Union[int, str], str]) -> 'PatchManifest':
        return cls(scripts)

    @classmethod
    def from_directory(cls, path: Union[str, Path]) -> 'PatchManifest':
        """Load every <id>.sql file in a directory"""
        directory = Path(path)
        scripts = {}
        if directory.is_dir():
            for sql_file in sorted(directory.glob("*.sql")):
                scripts[sql_file.stem] = sql_file.read_text(encoding="utf-8")
        else:
            logger.warning(f"Patch directory not found: {directory}")
        logger.debug(f"Loaded {len(scripts)} patches from {directory}")
        return cls(scripts)

    @classmethod
    def default(cls) -> 'PatchManifest':
        return cls.from_directory(DEFAULT_PATCH_DIR)

    def get(self, patch_id: Union[int, str]) -> Optional[str]:
        return self._scripts.get(str(patch_id))

    def has(self, patch_id: Union[int, str]) -> bool:
        return str(patch_id) in self._scripts

    def versions(self) -> List[int]:
        """Numeric patch ids, ascending (gaps included as they are)"""
        return sorted(int(k) for k in self._scripts if k.isdigit())

    def __len__(self):
        return len(self._scripts)


class SchemaVersionStore:
    """
    Reads and writes the recorded schema version.

    The remote settings table is authoritative. A reachable database without
    that table (or without a version row) has never been patched and is at
    version 0. The local settings file mirrors the version per database URL
    and is only used when the remote cannot be read at all.
    """

    def __init__(self, db):
        self.db = db

    def _query(self):
        return self.db.query(SettingsTable.TABLE_NAME)

    def read_remote(self) -> Optional[int]:
        """Remote schema version; None when the remote could not be read"""
        if not self.db.has_table(SettingsTable.TABLE_NAME):
            return 0 if self.db.last_outcome.ok else None
        row = (self._query()
               .column(SettingsTable.VALUE)
               .condition(SettingsTable.KEY, SettingsTable.VERSION)
               .select_first())
        if row is None:
            return 0 if self.db.last_outcome.ok else None
        try:
            return row.get_int(SettingsTable.VALUE)
        except TypeConversion as e:
            logger.warning(f"Ignoring unreadable remote schema version: {e}")
            return None

    def read_local(self) -> int:
        version = settings.get_schema_version(self.db.safe_url)
        return 0 if version is None else version

    def read(self) -> int:
        remote = self.read_remote()
        if remote is not None:
            return remote
        local = self.read_local()
        logger.warning(f"Remote schema version unavailable, using local value {local}")
        return local

    def write(self, version: int) -> None:
        """
        Record the schema version remotely and locally.

        Raises:
            MigrationFailed: the remote settings table exists but the
                version could not be written to it
        """
        if self.db.has_table(SettingsTable.TABLE_NAME):
            exists = (self._query()
                      .condition(SettingsTable.KEY, SettingsTable.VERSION)
                      .exists())
            if exists:
                written = (self._query()
                           .value(SettingsTable.VALUE, str(version))
                           .condition(SettingsTable.KEY, SettingsTable.VERSION)
                           .update())
            else:
                written = (self._query()
                           .value(SettingsTable.KEY, SettingsTable.VERSION)
                           .value(SettingsTable.VALUE, str(version))
                           .insert())
            if not written:
                raise MigrationFailed(str(version), "could not record the new schema version")

        settings.set_schema_version(self.db.safe_url, version)


class Patcher:
    """Applies pending database patches"""

    def __init__(self, db, manifest: Optional[PatchManifest] = None,
                 version_store: Optional[SchemaVersionStore] = None):
        self.db = db
        self.manifest = manifest if manifest is not None else PatchManifest.default()
        self.version_store = version_store or SchemaVersionStore(db)

    def current_version(self) -> int:
        return self.version_store.read()

    def pending(self, force: bool = False) -> List[int]:
        """Versions run() would apply, in order"""
        return self._pending_from(0 if force else self.current_version())

    def _pending_from(self, version: int) -> List[int]:
        versions = []
        while self.manifest.has(version + 1):
            version += 1
            versions.append(version)
        return versions

    def _execute(self, patch_id: str, script: str) -> None:
        logger.debug(f"Executing database patch: {patch_id}.sql")
        try:
            ScriptRunner(self.db).run(script)
        except (SQLAlchemyError, PersistenceError) as e:
            raise MigrationFailed(patch_id, f"error while executing {patch_id}.sql: {e}") from e

    def run(self, force: bool = False) -> List[int]:
        """
        Patch the database to the latest version.

        This runs on the calling thread and blocks until every patch is
        applied.

        Args:
            force: Start again from version 0 regardless of the recorded version

        Returns:
            The versions applied, in order (empty if already up to date)

        Raises:
            MigrationFailed: a patch failed; the recorded version stays at the
                last successful patch
        """
        start = 0 if force else self.current_version()
        versions = self._pending_from(start)
        if not versions:
            logger.info(f"Target database is up to date (version {start})")
            return []

        latest = versions[-1]
        logger.debug(f"Current version: {start}, latest version: {latest}")
        logger.info("+-------] Database Patcher [-------+")
        applied = []
        try:
            for version in versions:
                logger.info(f"|       Applying patch {version} / {latest}")
                self._execute(str(version), self.manifest.get(version))
                self.version_store.write(version)
                applied.append(version)
        except MigrationFailed as e:
            logger.error(f"Database patch failed: {e}")
            raise
        finally:
            logger.info("+----------------------------------+")

        logger.info(f"✅ Database patched to version {latest}")
        return applied

    def apply_custom(self, patch_id: str) -> bool:
        """
        Apply one named patch outside the numbered sequence.

        The recorded schema version is not changed.

        Returns:
            False if no such patch exists, True once it has been applied

        Raises:
            MigrationFailed: the patch failed while executing
        """
        script = self.manifest.get(patch_id)
        if script is None:
            logger.warning(f"Database patch not found: {patch_id}.sql")
            return False
        self._execute(str(patch_id), script)
        logger.info(f"Applied database patch {patch_id}")
        return True

    def run_in_background(self, intake, force: bool = False) -> Future:
        """
        Patch the database on a worker thread.

        Statistic intake is paused until the run ends; it is resumed even if
        a patch fails. The failure is logged and set on the returned future.
        """
        intake.pause()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='statsdb-patcher')
        try:
            return executor.submit(self._run_paused, intake, force)
        except RuntimeError:
            intake.resume()
            raise
        finally:
            executor.shutdown(wait=False)

    def _run_paused(self, intake, force: bool) -> List[int]:
        try:
            return self.run(force)
        except Exception as e:
            logger.error(f"Background database patch failed, statistics resumed: {e}")
            raise
        finally:
            intake.resume()
