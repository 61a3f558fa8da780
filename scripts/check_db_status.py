#!/usr/bin/env python
"""Quick CLI tool to check database status.

Run this to see whether an import is needed before running one.

Usage:
    python scripts/check_db_status.py
    python scripts/check_db_status.py --database-url sqlite+aiosqlite:///./other.sqlite
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from deadly_sync.db.database import create_engine, create_session_factory, init_db
from deadly_sync.db.inspector import get_database_status, print_status_report
from deadly_sync.db.store import RecordStore


async def main(args) -> int:
    """Check and print database status."""
    engine = create_engine(args.database_url)
    try:
        await init_db(engine)

        status = await get_database_status(RecordStore(create_session_factory(engine)))

        print_status_report(status)
    finally:
        await engine.dispose()

    # Return exit code based on status
    if status.get("error"):
        return 1
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show local database status")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy async database URL (default: DATABASE_URL setting)"
    )
    exit_code = asyncio.run(main(parser.parse_args()))
    sys.exit(exit_code)
