"""RecordStore: batched insert / delete / fetch per entity.

The importer and the collection resolver talk to the database only through
this class. Every write method runs in its own transaction and commits before
returning, so a batch is either fully written or not written at all.

Statements stay dialect-neutral (plain inserts, delete-all, ``merge`` for the
version singleton) so the same store runs on SQLite and PostgreSQL.
"""

import logging
from typing import Any, Iterable

from sqlalchemy import delete, distinct, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deadly_sync.core.exceptions import StoreError
from deadly_sync.db.models import (
    DataVersion, DeadCollection, LibraryShow, Recording, RecentShow, Show, ShowSearch,
)

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _as_dict(obj) -> dict[str, Any]:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


class RecordStore:
    """Persistence facade over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _write(self, operation: str, statements: Iterable[tuple]):
        """Execute ``(statement, params)`` pairs in one transaction."""
        try:
            async with self.session_factory() as session:
                for statement, params in statements:
                    if params is None:
                        await session.execute(statement)
                    elif params:
                        await session.execute(statement, params)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(operation, e) from e

    # ============ Version ============

    async def fetch_data_version(self) -> DataVersion | None:
        try:
            async with self.session_factory() as session:
                return await session.get(DataVersion, 1)
        except SQLAlchemyError as e:
            raise StoreError("fetch data version", e) from e

    async def has_data_version(self) -> bool:
        return await self.fetch_data_version() is not None

    async def upsert_data_version(self, values: dict[str, Any]):
        try:
            async with self.session_factory() as session:
                await session.merge(DataVersion(id=1, **values))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError("upsert data version", e) from e

    # ============ Derived tables ============

    async def clear_derived_data(self):
        """Delete search rows, recordings and shows.

        Deleting shows cascades to library_shows and recent_shows.
        """
        await self._write(
            "clear shows",
            [
                (delete(ShowSearch), None),
                (delete(Recording), None),
                (delete(Show), None),
            ],
        )

    async def insert_shows(self, show_rows: list[dict], search_rows: list[dict]):
        await self._write(
            "insert shows",
            [
                (insert(Show), show_rows),
                (insert(ShowSearch), search_rows),
            ],
        )

    async def insert_recordings(self, rows: list[dict]):
        await self._write("insert recordings", [(insert(Recording), rows)])

    async def replace_collections(self, rows: list[dict]):
        await self._write(
            "replace collections",
            [
                (delete(DeadCollection), None),
                (insert(DeadCollection), rows),
            ],
        )

    # ============ Library ============

    async def fetch_library(self) -> list[dict[str, Any]]:
        """All library entries as plain dicts, oldest first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(LibraryShow).order_by(LibraryShow.added_to_library_at, LibraryShow.show_id)
                )
                return [_as_dict(entry) for entry in result.scalars()]
        except SQLAlchemyError as e:
            raise StoreError("fetch library", e) from e

    async def add_to_library(self, show_id: str, added_at: int, **fields):
        entry = {"show_id": show_id, "added_to_library_at": added_at, **fields}
        await self.restore_library([entry])

    async def restore_library(self, entries: list[dict[str, Any]]) -> int:
        """Insert library entries and flag their shows as in the library."""
        if not entries:
            return 0
        flags = [
            {
                "show_id": entry["show_id"],
                "is_in_library": True,
                "library_added_at": entry["added_to_library_at"],
            }
            for entry in entries
        ]
        await self._write(
            "restore library",
            [
                (insert(LibraryShow), entries),
                (update(Show), flags),
            ],
        )
        return len(entries)

    # ============ Show lookups ============

    async def _show_ids(self, operation: str, *criteria) -> list[str]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Show.show_id).where(*criteria).order_by(Show.show_id)
                )
                return list(result.scalars())
        except SQLAlchemyError as e:
            raise StoreError(operation, e) from e

    async def show_ids_by_date(self, date: str) -> list[str]:
        return await self._show_ids("fetch shows by date", Show.date == date)

    async def show_ids_in_date_range(self, start: str, end: str) -> list[str]:
        """Shows dated within ``[start, end]`` (ISO dates compare as strings)."""
        return await self._show_ids(
            "fetch shows in range", Show.date >= start, Show.date <= end
        )

    async def show_ids_by_venue(self, venue: str) -> list[str]:
        """Case-insensitive substring match on the venue name."""
        pattern = f"%{escape_like(venue)}%"
        return await self._show_ids(
            "fetch shows by venue", Show.venue_name.ilike(pattern, escape="\\")
        )

    async def show_ids_by_year(self, year: int) -> list[str]:
        return await self._show_ids("fetch shows by year", Show.year == year)

    async def fetch_show(self, show_id: str) -> Show | None:
        try:
            async with self.session_factory() as session:
                return await session.get(Show, show_id)
        except SQLAlchemyError as e:
            raise StoreError("fetch show", e) from e

    async def fetch_recordings_for_show(self, show_id: str) -> list[Recording]:
        """Recordings of a show, best rated first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Recording)
                    .where(Recording.show_id == show_id)
                    .order_by(Recording.rating.desc(), Recording.identifier)
                )
                return list(result.scalars())
        except SQLAlchemyError as e:
            raise StoreError("fetch recordings", e) from e

    async def search_shows(self, query: str, limit: int = 50) -> list[Show]:
        """Shows whose search text contains every whitespace-separated token."""
        tokens = query.split()
        if not tokens:
            return []
        criteria = [
            ShowSearch.search_text.ilike(f"%{escape_like(token)}%", escape="\\")
            for token in tokens
        ]
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Show)
                    .join(ShowSearch, ShowSearch.show_id == Show.show_id)
                    .where(*criteria)
                    .order_by(Show.date, Show.show_id)
                    .limit(limit)
                )
                return list(result.scalars())
        except SQLAlchemyError as e:
            raise StoreError("search shows", e) from e

    async def fetch_collection(self, collection_id: str) -> DeadCollection | None:
        try:
            async with self.session_factory() as session:
                return await session.get(DeadCollection, collection_id)
        except SQLAlchemyError as e:
            raise StoreError("fetch collection", e) from e

    # ============ Counts ============

    async def _count(self, operation: str, statement) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(statement)
                return result.scalar_one_or_none() or 0
        except SQLAlchemyError as e:
            raise StoreError(operation, e) from e

    async def count_shows(self) -> int:
        return await self._count("count shows", select(func.count()).select_from(Show))

    async def count_search_rows(self) -> int:
        return await self._count("count search rows", select(func.count()).select_from(ShowSearch))

    async def count_recordings(self) -> int:
        return await self._count("count recordings", select(func.count()).select_from(Recording))

    async def count_collections(self) -> int:
        return await self._count("count collections", select(func.count()).select_from(DeadCollection))

    async def count_library(self) -> int:
        return await self._count("count library", select(func.count()).select_from(LibraryShow))

    async def count_recent_shows(self) -> int:
        return await self._count("count recent shows", select(func.count()).select_from(RecentShow))

    async def count_venues(self) -> int:
        return await self._count(
            "count venues", select(func.count(distinct(Show.venue_name)))
        )
