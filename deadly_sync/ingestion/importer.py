"""
Import pipeline: metadata release -> local database.

============================================================================
PHASES
============================================================================
1. checking               skip everything when data exists (unless force)
2. downloading            latest release metadata, then the data*.zip asset
3. extracting             unpack to a temp dir, find the data root
4. reading_shows          parse shows/*.json (bad files are skipped)
   -- snapshot library, clear show_search / recordings / shows --
5. importing_shows        shows + search rows, batched
   -- reverse index recording_id -> [show_id] --
6. importing_recordings   stream recordings/*.json one file at a time
7. importing_collections  resolve collections.json selectors
8. finalizing             version record, restore library
9. completed

Any unrecovered error ends the stream with a single `failed` event. Batches
already written stay written; re-running with force=True rebuilds everything
from scratch. The downloaded archive and extraction directory are removed on
every exit path, including the consumer abandoning the stream.
============================================================================
"""

import logging
import shutil
import time
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Protocol

from deadly_sync.config import Settings, get_settings
from deadly_sync.core.exceptions import DocumentParseError, NoDataAssetError, StoreError
from deadly_sync.db.store import RecordStore
from deadly_sync.ingestion.archive import (
    list_json_files, load_document, load_manifest, resolve_data_root,
)
from deadly_sync.ingestion.collections import CollectionResolver
from deadly_sync.ingestion.documents import RecordingDocument, ShowDocument
from deadly_sync.ingestion.progress import ImportPhase, ImportProgress
from deadly_sync.ingestion.recording_builder import build_recording_records, build_reverse_index
from deadly_sync.ingestion.release_downloader import ReleaseAsset, ReleaseMetadata
from deadly_sync.ingestion.show_builder import build_show_records, current_millis

logger = logging.getLogger(__name__)

TOTAL_STEPS = 8


class ReleaseClient(Protocol):
    async def fetch_latest_release(self) -> ReleaseMetadata: ...

    async def download(self, asset: ReleaseAsset) -> Path: ...


class ArchiveExtractor(Protocol):
    def extract(self, archive_path: Path) -> Path: ...


class _Scratch:
    """Temporary files created by one run."""

    def __init__(self):
        self.archive_path: Path | None = None
        self.extract_dir: Path | None = None

    def cleanup(self):
        if self.archive_path is not None:
            try:
                Path(self.archive_path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {self.archive_path}: {e}")
        if self.extract_dir is not None:
            shutil.rmtree(self.extract_dir, ignore_errors=True)


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ImportOrchestrator:
    """Drives one import run and reports it as a stream of ImportProgress.

    Usage:
        orchestrator = ImportOrchestrator(GitHubReleaseClient(), ZipArchiveExtractor(), store)
        async for event in orchestrator.run(force=True):
            print(event)
    """

    def __init__(
        self,
        release_client: ReleaseClient,
        extractor: ArchiveExtractor,
        store: RecordStore,
        settings: Settings | None = None,
    ):
        self.release_client = release_client
        self.extractor = extractor
        self.store = store
        self.settings = settings or get_settings()
        self._start_time = time.time()

    def _log_step(self, step: int, name: str, status: str = "starting"):
        elapsed = time.time() - self._start_time
        elapsed_str = f"{int(elapsed // 60)}m {int(elapsed % 60)}s"
        logger.info(f"{'=' * 50}")
        logger.info(f"[{step}/{TOTAL_STEPS}] {name.upper()} - {status} (elapsed: {elapsed_str})")
        logger.info(f"{'=' * 50}")

    async def run(self, force: bool = False) -> AsyncIterator[ImportProgress]:
        """Run the pipeline, yielding progress until completed or failed."""
        self._start_time = time.time()
        scratch = _Scratch()
        try:
            async with aclosing(self._perform_import(force, scratch)) as events:
                async for event in events:
                    yield event
        except Exception as e:
            logger.error(f"Import failed: {e}", exc_info=True)
            yield ImportProgress(ImportPhase.FAILED, message=str(e) or type(e).__name__)
        finally:
            scratch.cleanup()

    async def _perform_import(self, force: bool, scratch: _Scratch) -> AsyncIterator[ImportProgress]:
        settings = self.settings

        # Step 1: Check
        self._log_step(1, "Checking existing data")
        yield ImportProgress(ImportPhase.CHECKING, message="Checking for existing data")
        if not force and await self.store.has_data_version():
            logger.info("Data already present; skipping import")
            yield ImportProgress(ImportPhase.COMPLETED, message="Data already present; skipping import")
            return

        # Step 2: Download
        self._log_step(2, "Downloading release")
        yield ImportProgress(ImportPhase.DOWNLOADING, 0, 1, "Fetching latest release")
        release = await self.release_client.fetch_latest_release()
        asset = release.find_data_asset(settings.data_asset_prefix, settings.data_asset_suffix)
        if asset is None:
            raise NoDataAssetError(release.tag_name)

        yield ImportProgress(ImportPhase.DOWNLOADING, 0, 1, f"Downloading {asset.name}")
        scratch.archive_path = await self.release_client.download(asset)
        yield ImportProgress(ImportPhase.DOWNLOADING, 1, 1, f"Downloaded {asset.name}")

        # Step 3: Extract
        self._log_step(3, "Extracting archive")
        yield ImportProgress(ImportPhase.EXTRACTING, 0, 1, "Extracting archive")
        scratch.extract_dir = Path(self.extractor.extract(scratch.archive_path))
        root = resolve_data_root(scratch.extract_dir)
        logger.info(f"Data root: {root}")
        yield ImportProgress(ImportPhase.EXTRACTING, 1, 1, "Extracted archive")

        # Step 4: Parse shows
        self._log_step(4, "Reading shows")
        show_files = list_json_files(root / "shows")
        total_files = len(show_files)
        yield ImportProgress(ImportPhase.READING_SHOWS, 0, total_files, f"Parsing {total_files} show files")

        shows: dict[str, ShowDocument] = {}
        skipped = 0
        for i, path in enumerate(show_files, 1):
            try:
                show = load_document(ShowDocument, path)
            except DocumentParseError as e:
                logger.warning(f"Skipping show file: {e}")
                skipped += 1
            else:
                if show.show_id in shows:
                    logger.warning(f"Duplicate show id {show.show_id} in {path.name}; keeping the later file")
                shows[show.show_id] = show

            if i % settings.show_progress_interval == 0:
                yield ImportProgress(ImportPhase.READING_SHOWS, i, total_files, "Parsing shows")

        logger.info(f"Parsed {len(shows)} shows ({skipped} files skipped)")
        yield ImportProgress(
            ImportPhase.READING_SHOWS, total_files, total_files, f"Parsed {len(shows)} shows"
        )

        # Library rows cascade away with their shows, so save them first
        try:
            saved_library = await self.store.fetch_library()
        except StoreError as e:
            logger.warning(f"Could not snapshot library, it will not be restored: {e}")
            saved_library = []
        logger.info(f"Saved {len(saved_library)} library entries")

        await self.store.clear_derived_data()
        logger.info("Cleared shows, recordings and search index")

        # Step 5: Shows + search rows
        self._log_step(5, "Importing shows")
        now = current_millis()
        show_docs = list(shows.values())
        imported_show_ids = set(shows)
        recording_index = build_reverse_index(show_docs)
        shows.clear()

        total_shows = len(show_docs)
        imported_shows = 0
        for chunk in _chunks(show_docs, settings.import_batch_size):
            rows = [build_show_records(doc, now) for doc in chunk]
            await self.store.insert_shows([show for show, _ in rows], [search for _, search in rows])
            imported_shows += len(chunk)
            yield ImportProgress(ImportPhase.IMPORTING_SHOWS, imported_shows, total_shows, "Importing shows")
        del show_docs

        logger.info(f"Imported {imported_shows} shows; {len(recording_index)} recordings referenced")

        # Step 6: Recordings, one file in memory at a time
        self._log_step(6, "Importing recordings")
        recording_files = [
            path for path in list_json_files(root / "recordings") if path.stem in recording_index
        ]
        total_recordings = len(recording_files)
        yield ImportProgress(
            ImportPhase.IMPORTING_RECORDINGS, 0, total_recordings,
            f"Importing {total_recordings} recordings",
        )

        batch: list[dict] = []
        imported_recordings = 0
        for i, path in enumerate(recording_files, 1):
            recording_id = path.stem
            try:
                recording = load_document(RecordingDocument, path)
            except DocumentParseError as e:
                logger.debug(f"Skipping recording file: {e}")
                recording = None

            if recording is not None:
                batch.extend(
                    build_recording_records(recording_id, recording, recording_index[recording_id], now)
                )

            if len(batch) >= settings.import_batch_size:
                await self.store.insert_recordings(batch)
                imported_recordings += len(batch)
                batch = []
                yield ImportProgress(ImportPhase.IMPORTING_RECORDINGS, i, total_recordings, "Importing recordings")
            elif i % settings.recording_progress_interval == 0:
                yield ImportProgress(ImportPhase.IMPORTING_RECORDINGS, i, total_recordings, "Importing recordings")

        if batch:
            await self.store.insert_recordings(batch)
            imported_recordings += len(batch)
            batch = []

        logger.info(f"Imported {imported_recordings} recordings from {total_recordings} files")
        yield ImportProgress(
            ImportPhase.IMPORTING_RECORDINGS, total_recordings, total_recordings,
            f"Imported {imported_recordings} recordings",
        )
        recording_index.clear()

        # Step 7: Collections
        self._log_step(7, "Importing collections")
        yield ImportProgress(ImportPhase.IMPORTING_COLLECTIONS, 0, 1, "Resolving collections")
        resolver = CollectionResolver(self.store)
        collections = await resolver.import_collections(root, now)
        try:
            await self.store.replace_collections(collections)
        except StoreError as e:
            logger.warning(f"Could not store collections: {e}")
            collections = []
        yield ImportProgress(
            ImportPhase.IMPORTING_COLLECTIONS, 1, 1, f"Imported {len(collections)} collections"
        )

        # Step 8: Finalize
        self._log_step(8, "Finalizing")
        yield ImportProgress(ImportPhase.FINALIZING, 0, 1, "Finalizing")
        manifest = load_manifest(root)
        version = (manifest.version if manifest else None) or release.tag_name
        await self.store.upsert_data_version({
            "data_version": version,
            "package_name": settings.package_name,
            "version_type": "release",
            "description": f"Imported from GitHub release {release.tag_name}",
            "imported_at": now,
            "git_commit": manifest.git_commit if manifest else None,
            "git_tag": release.tag_name,
            "build_timestamp": manifest.build_timestamp if manifest else None,
            "total_shows": imported_shows,
            "total_venues": await self.store.count_venues(),
            "total_files": imported_recordings,
            "total_size_bytes": asset.size,
        })
        logger.info(f"Recorded data version {version}")

        await self._restore_library(saved_library, imported_show_ids)
        yield ImportProgress(ImportPhase.FINALIZING, 1, 1, "Finalized")

        self._log_step(8, "Import", "complete")
        total = imported_shows + imported_recordings
        yield ImportProgress(
            ImportPhase.COMPLETED, total, total,
            f"Imported {imported_shows} shows, {imported_recordings} recordings, "
            f"{len(collections)} collections",
        )

    async def _restore_library(self, saved_library: list[dict], show_ids: set[str]):
        """Reinsert saved library entries whose show survived the import."""
        if not saved_library:
            return

        to_restore = [entry for entry in saved_library if entry["show_id"] in show_ids]
        dropped = len(saved_library) - len(to_restore)
        try:
            restored = await self.store.restore_library(to_restore)
        except StoreError as e:
            logger.warning(f"Library restore failed, continuing: {e}")
            return

        logger.info(f"Restored {restored} library entries ({dropped} dropped, show no longer present)")
