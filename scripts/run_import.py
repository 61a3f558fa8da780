#!/usr/bin/env python
"""
Data import script.

Downloads the latest metadata release and rebuilds the local show database.
The import is skipped when data has already been imported, unless --force.

Usage:
    python scripts/run_import.py
    python scripts/run_import.py --force                     # Re-import even if data exists
    python scripts/run_import.py --database-url sqlite+aiosqlite:///./other.sqlite
    python scripts/run_import.py --no-log-file               # Console only
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from deadly_sync.config import get_settings
from deadly_sync.db.database import create_engine, create_session_factory, init_db
from deadly_sync.db.store import RecordStore
from deadly_sync.ingestion.archive import ZipArchiveExtractor
from deadly_sync.ingestion.importer import ImportOrchestrator
from deadly_sync.ingestion.progress import ImportPhase
from deadly_sync.ingestion.release_downloader import GitHubReleaseClient

NOISY_LOGGERS = ("sqlalchemy", "httpx", "httpcore", "aiosqlite")


def setup_logging(log_to_file: bool = True, debug: bool = False) -> logging.Logger:
    """Configure the root logger so every module logs to console (and a file)."""
    root_logger = logging.getLogger()
    level = logging.DEBUG if debug else logging.INFO
    root_logger.setLevel(level)

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        log_dir = Path(__file__).parent.parent / "logs"
        log_dir.mkdir(exist_ok=True)

        log_file = log_dir / f"import_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        print(f"Logging to: {log_file}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger(__name__)


async def main(args) -> int:
    """Run the import and return the process exit code."""
    settings = get_settings()
    logger = setup_logging(log_to_file=not args.no_log_file, debug=settings.debug)
    database_url = args.database_url or settings.database_url

    logger.info("=" * 60)
    logger.info("Show Data Import")
    logger.info(f"  Force: {args.force}")
    logger.info(f"  Database: {database_url}")
    logger.info(f"  Release: {settings.releases_api_url}")
    logger.info("=" * 60)

    engine = create_engine(database_url)
    try:
        logger.info("Initializing database...")
        await init_db(engine)

        store = RecordStore(create_session_factory(engine))
        orchestrator = ImportOrchestrator(
            GitHubReleaseClient(settings),
            ZipArchiveExtractor(settings.work_dir),
            store,
            settings,
        )

        last_event = None
        async for event in orchestrator.run(force=args.force):
            last_event = event
            logger.info(f"Progress: {event}")

        if last_event is None or last_event.phase is ImportPhase.FAILED:
            logger.error(f"Import failed: {last_event.message if last_event else 'no progress reported'}")
            return 1

        logger.info("=" * 60)
        logger.info(f"Import complete: {last_event.message}")
        logger.info("=" * 60)
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Import the latest show metadata release into the local database"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-import even if data has already been imported"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy async database URL (default: DATABASE_URL setting)"
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable file logging (console only)"
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(main(args)))
