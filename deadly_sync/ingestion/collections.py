"""Resolve curated collections from collections.json.

Each collection carries a ``show_selector`` of independent rules; the member
set is the union of what every rule selects, evaluated against the shows that
were just imported:

    show_ids          explicit ids, taken as-is
    dates             shows on each exact date
    ranges            shows within any {start, end} range (inclusive)
    range             shows within one range, minus exclusion_ranges
                      ({from, to}) and exclusion_dates
    venues            venue name contains the substring (case-insensitive)
    years             shows in each year

Resolution never raises: a rule whose lookup fails contributes nothing, a
malformed collection entry is skipped, and a missing collections.json means
no collections.
"""

import logging
from pathlib import Path
from typing import Any, Awaitable

from pydantic import ValidationError

from deadly_sync.core.exceptions import DocumentParseError, StoreError
from deadly_sync.db.store import RecordStore
from deadly_sync.ingestion.archive import find_collections_file, load_json
from deadly_sync.ingestion.documents import CollectionDocument, ShowSelector

logger = logging.getLogger(__name__)

CollectionRow = dict[str, Any]


class CollectionResolver:
    def __init__(self, store: RecordStore):
        self.store = store

    async def _lookup(self, description: str, lookup: Awaitable[list[str]]) -> set[str]:
        try:
            return set(await lookup)
        except StoreError as e:
            logger.warning(f"Collection rule {description} failed: {e}")
            return set()

    async def resolve_show_ids(self, selector: ShowSelector | None) -> list[str]:
        """Sorted, unique show ids selected by ``selector``."""
        if selector is None:
            return []

        resolved: set[str] = set(selector.show_ids)

        for date in selector.dates:
            resolved |= await self._lookup(f"date {date}", self.store.show_ids_by_date(date))

        for date_range in selector.ranges:
            resolved |= await self._lookup(
                f"range {date_range.start}..{date_range.end}",
                self.store.show_ids_in_date_range(date_range.start, date_range.end),
            )

        if selector.range is not None:
            in_range = await self._lookup(
                f"range {selector.range.start}..{selector.range.end}",
                self.store.show_ids_in_date_range(selector.range.start, selector.range.end),
            )
            for exclusion in selector.exclusion_ranges:
                in_range -= await self._lookup(
                    f"exclusion {exclusion.start}..{exclusion.end}",
                    self.store.show_ids_in_date_range(exclusion.start, exclusion.end),
                )
            for date in selector.exclusion_dates:
                in_range -= await self._lookup(
                    f"exclusion date {date}", self.store.show_ids_by_date(date)
                )
            resolved |= in_range

        for venue in selector.venues:
            resolved |= await self._lookup(f"venue {venue!r}", self.store.show_ids_by_venue(venue))

        for year in selector.years:
            resolved |= await self._lookup(f"year {year}", self.store.show_ids_by_year(year))

        return sorted(resolved)

    async def build_collection_record(self, collection: CollectionDocument, now: int) -> CollectionRow:
        show_ids = await self.resolve_show_ids(collection.show_selector)
        return {
            "id": collection.id,
            "name": collection.name,
            "description": collection.description,
            "tags": list(collection.tags),
            "show_ids": show_ids,
            "total_shows": len(show_ids),
            "primary_tag": collection.tags[0] if collection.tags else None,
            "created_at": now,
            "updated_at": now,
        }

    async def import_collections(self, extracted_root: Path, now: int) -> list[CollectionRow]:
        """Collection rows for every valid entry of collections.json."""
        path = find_collections_file(extracted_root)
        if path is None:
            logger.warning(f"No collections.json found under {extracted_root}")
            return []

        try:
            data = load_json(path)
        except DocumentParseError as e:
            logger.warning(f"Skipping collections: {e}")
            return []

        entries = data.get("collections") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            logger.warning(f"{path} has no collections list")
            return []

        records = []
        seen_ids = set()
        for position, entry in enumerate(entries):
            try:
                collection = CollectionDocument.model_validate(entry)
            except ValidationError as e:
                logger.warning(f"Skipping malformed collection #{position}: {e.error_count()} errors")
                continue
            if collection.id in seen_ids:
                logger.warning(f"Skipping duplicate collection id {collection.id}")
                continue
            seen_ids.add(collection.id)
            records.append(await self.build_collection_record(collection, now))

        logger.info(f"Resolved {len(records)} collections from {path}")
        return records

