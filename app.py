"""
Statkeeper - Persistence Startup

Entry point used by the game server host: sets up logging, connects to the
remote statistics database, patches the schema to the latest version and
hands back the database handle plus the statistic intake gate.

Run standalone to patch a database without starting the game server:
    python app.py
    python app.py --force
    python app.py --patch reset_sessions
"""

import argparse
import logging
import os
import sys
from typing import Optional, Tuple

from config import Config, config
from statsdb import (
    ConnectionFailed,
    Database,
    MigrationFailed,
    PatchManifest,
    Patcher,
    StatsIntake,
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(cfg: Config = config) -> None:
    """Log to logs/statkeeper.log and the console"""
    cfg.ensure_dirs()
    log_file_path = os.path.join(cfg.LOG_DIR, 'statkeeper.log')

    logging.basicConfig(
        level=logging.DEBUG if cfg.DEBUG else logging.INFO,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file_path),
            logging.StreamHandler()
        ]
    )


def load_manifest(cfg: Config = config) -> PatchManifest:
    """Patches from PATCH_DIR, or the ones bundled with statsdb"""
    if cfg.PATCH_DIR:
        return PatchManifest.from_directory(cfg.PATCH_DIR)
    return PatchManifest.default()


def start_persistence(cfg: Config = config,
                      manifest: Optional[PatchManifest] = None,
                      force: bool = False) -> Tuple[Database, StatsIntake]:
    """
    Connect and patch the database before any statistic traffic.

    Intake stays paused until the schema is current.

    Raises:
        ConnectionFailed: the database could not be reached
        MigrationFailed: a patch failed; the host decides whether to abort
    """
    db = Database.from_config(cfg)
    intake = StatsIntake()
    intake.pause()

    db.connect()
    try:
        Patcher(db, manifest or load_manifest(cfg)).run(force=force)
    except MigrationFailed:
        db.cleanup()
        raise

    intake.resume()
    return db, intake


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Patch the statistics database')
    parser.add_argument('--force', action='store_true',
                        help='Re-apply every patch starting from version 0')
    parser.add_argument('--patch', metavar='ID',
                        help='Apply a single named patch (<ID>.sql) and exit')
    args = parser.parse_args(argv)

    setup_logging()

    try:
        db, intake = start_persistence(force=args.force)
    except ConnectionFailed as e:
        logger.critical(f"Could not connect to the database: {e}")
        return 1
    except MigrationFailed as e:
        logger.critical(f"Database patch failed: {e}")
        return 2

    try:
        if args.patch:
            if not Patcher(db, load_manifest()).apply_custom(args.patch):
                logger.error(f"No such patch: {args.patch}")
                return 1
        logger.info(f"Database status: {db.get_status()}")
        logger.info(f"Intake status: {intake.get_status()}")
    except MigrationFailed as e:
        logger.critical(f"Database patch failed: {e}")
        return 2
    finally:
        db.cleanup()

    return 0


if __name__ == '__main__':
    sys.exit(main())
