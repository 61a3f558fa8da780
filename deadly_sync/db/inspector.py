"""Database state inspection utilities.

Answers "do I need to import?" without touching the network:
1. Is there a data version row? (an import has completed at least once)
2. Do the derived tables have rows? (shows > 0, one search row per show)
3. Which release was imported and when?

A search row count that differs from the show count means the last import
was interrupted; re-run it with --force.
"""

import logging
from datetime import datetime, timezone

from deadly_sync.core.exceptions import StoreError
from deadly_sync.db.store import RecordStore

logger = logging.getLogger(__name__)


async def get_database_status(store: RecordStore) -> dict:
    """Get database status.

    Returns:
        dict with keys:
        - has_data: bool - True if a data version has been recorded
        - needs_import: bool - True if no import has completed
        - show_count: int
        - data_version: str | None - Version of the imported archive
        - git_tag / git_commit: release the data came from
        - imported_at: str | None - ISO timestamp of the last import
        - consistent: bool - search rows match shows
        - table_counts: dict - Row counts per table
        - error: str - Only present when the database could not be read
    """
    try:
        table_counts = {
            "shows": await store.count_shows(),
            "show_search": await store.count_search_rows(),
            "recordings": await store.count_recordings(),
            "dead_collections": await store.count_collections(),
            "library_shows": await store.count_library(),
            "recent_shows": await store.count_recent_shows(),
        }
        version = await store.fetch_data_version()
    except StoreError as e:
        logger.error(f"Failed to get database status: {e}")
        return {"error": str(e), "has_data": False, "needs_import": True}

    result = {
        "has_data": version is not None,
        "needs_import": version is None,
        "show_count": table_counts["shows"],
        "consistent": table_counts["shows"] == table_counts["show_search"],
        "table_counts": table_counts,
        "data_version": None,
        "git_tag": None,
        "git_commit": None,
        "imported_at": None,
    }

    if version is not None:
        result["data_version"] = version.data_version
        result["git_tag"] = version.git_tag
        result["git_commit"] = version.git_commit
        result["imported_at"] = datetime.fromtimestamp(
            version.imported_at / 1000, tz=timezone.utc
        ).isoformat()

    return result


def print_status_report(status: dict) -> None:
    """Print a formatted status report to console."""
    print("=" * 60)
    print("DATABASE STATUS REPORT")
    print("=" * 60)
    print()

    if status.get("error"):
        print(f"ERROR: {status['error']}")
        return

    print(f"Has Data:       {'Yes' if status['has_data'] else 'NO - EMPTY'}")
    print(f"Data Version:   {status.get('data_version') or 'None'}")
    print(f"Release Tag:    {status.get('git_tag') or 'Unknown'}")
    print(f"Last Import:    {status.get('imported_at') or 'Never'}")
    print()

    print("Table Counts:")
    for table, count in status["table_counts"].items():
        print(f"  {table:20} {count:>10,}")

    print()
    print("=" * 60)

    if status["needs_import"]:
        print("ACTION NEEDED: No data imported. Run: python scripts/run_import.py")
    elif not status["consistent"]:
        print("WARNING: Search index does not match shows. Run: python scripts/run_import.py --force")
    else:
        print("STATUS: Database is populated and ready.")

    print("=" * 60)
