import pytest

from deadly_sync.core.exceptions import DownloadFailedError, StoreError
from deadly_sync.ingestion.archive import ZipArchiveExtractor
from deadly_sync.ingestion.importer import ImportOrchestrator
from deadly_sync.ingestion.progress import ImportPhase
from deadly_sync.ingestion.release_downloader import ReleaseMetadata
from tests.factories import StubReleaseClient, recording_doc, show_doc, write_archive_dir

MANIFEST = {
    "package": {"version": "2.1.0"},
    "build_info": {"git_commit": "abc123", "build_timestamp": "2024-03-01T12:00:00Z"},
}

COLLECTIONS = [
    {
        "id": "spring-77",
        "name": "Spring 1977",
        "description": "",
        "tags": ["tour"],
        "show_selector": {"range": {"start": "1977-05-01", "end": "1977-05-31"}, "exclusion_dates": ["1977-05-09"]},
    },
]


def default_shows():
    return [
        show_doc("gd1977-05-08", "1977-05-08", recordings=["gd77-05-08.sbd", "gd77-05-08.aud"]),
        show_doc("gd1977-05-09", "1977-05-09", venue="War Memorial", recordings=["gd77-05-09.sbd", "shared"]),
        show_doc("gd1977-05-10", "1977-05-10", venue="Civic Center", recordings=["shared"]),
    ]


def default_recordings():
    return {
        "gd77-05-08.sbd": recording_doc(),
        "gd77-05-08.aud": recording_doc(source_type="AUD"),
        "gd77-05-09.sbd": recording_doc(),
        "shared": recording_doc(),
        "orphan": recording_doc(),
    }


def make_orchestrator(store, settings, tmp_path, source, **client_kwargs):
    client = StubReleaseClient(source, tmp_path / "downloads", **client_kwargs)
    extractor = ZipArchiveExtractor(settings.work_dir)
    return ImportOrchestrator(client, extractor, store, settings), client


async def collect(orchestrator, force=False):
    return [event async for event in orchestrator.run(force=force)]


def phases(events):
    return [event.phase for event in events]


@pytest.fixture
def source(tmp_path):
    return write_archive_dir(
        tmp_path / "source",
        default_shows(),
        default_recordings(),
        collections=COLLECTIONS,
        manifest=MANIFEST,
    )


async def test_full_import(store, settings, tmp_path, source):
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)

    events = await collect(orchestrator)

    assert events[0].phase is ImportPhase.CHECKING
    assert events[-1].phase is ImportPhase.COMPLETED
    assert events[-1].message == "Imported 3 shows, 5 recordings, 1 collections"
    seen = list(dict.fromkeys(phases(events)))
    assert seen == [
        ImportPhase.CHECKING,
        ImportPhase.DOWNLOADING,
        ImportPhase.EXTRACTING,
        ImportPhase.READING_SHOWS,
        ImportPhase.IMPORTING_SHOWS,
        ImportPhase.IMPORTING_RECORDINGS,
        ImportPhase.IMPORTING_COLLECTIONS,
        ImportPhase.FINALIZING,
        ImportPhase.COMPLETED,
    ]

    assert await store.count_shows() == 3
    assert await store.count_search_rows() == 3
    assert await store.count_recordings() == 5
    collection = await store.fetch_collection("spring-77")
    assert collection.show_ids == ["gd1977-05-08", "gd1977-05-10"]
    assert collection.primary_tag == "tour"

    version = await store.fetch_data_version()
    assert version.data_version == "2.1.0"
    assert version.git_tag == "v2.1.0"
    assert version.git_commit == "abc123"
    assert version.build_timestamp == "2024-03-01T12:00:00Z"
    assert version.package_name == "dead-metadata"
    assert version.version_type == "release"
    assert version.description == "Imported from GitHub release v2.1.0"
    assert version.total_shows == 3
    assert version.total_venues == 3
    assert version.total_files == 5
    assert version.total_size_bytes == 4096


async def test_recordings_fan_out_to_every_owning_show(store, settings, tmp_path, source):
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)
    await collect(orchestrator)

    pairs = set()
    for show_id in ("gd1977-05-08", "gd1977-05-09", "gd1977-05-10"):
        for recording in await store.fetch_recordings_for_show(show_id):
            pairs.add((recording.identifier, recording.show_id))

    assert pairs == {
        ("gd77-05-08.sbd", "gd1977-05-08"),
        ("gd77-05-08.aud", "gd1977-05-08"),
        ("gd77-05-09.sbd", "gd1977-05-09"),
        ("shared", "gd1977-05-09"),
        ("shared", "gd1977-05-10"),
    }


async def test_existing_data_skips_import(store, settings, tmp_path, source):
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)
    await collect(orchestrator)
    await store.add_to_library("gd1977-05-08", added_at=1)

    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)
    events = await collect(orchestrator, force=False)

    assert phases(events) == [ImportPhase.CHECKING, ImportPhase.COMPLETED]
    assert "skipping" in events[-1].message
    assert client.fetch_calls == 0
    assert client.downloads == []
    assert await store.count_shows() == 3
    assert await store.count_library() == 1


async def test_force_reimports_over_existing_data(store, settings, tmp_path, source):
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)
    await collect(orchestrator)

    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)
    events = await collect(orchestrator, force=True)

    assert events[-1].phase is ImportPhase.COMPLETED
    assert client.fetch_calls == 1
    assert await store.count_shows() == 3
    assert await store.count_recordings() == 5


async def test_library_preserved_for_surviving_shows(store, settings, tmp_path):
    first = write_archive_dir(tmp_path / "first", [
        show_doc("show-a", "1977-05-08"),
        show_doc("show-b", "1977-05-09"),
    ])
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, first)
    await collect(orchestrator)
    await store.add_to_library("show-a", added_at=100, is_pinned=True)
    await store.add_to_library("show-b", added_at=200)

    second = write_archive_dir(tmp_path / "second", [show_doc("show-a", "1977-05-08")])
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, second)
    events = await collect(orchestrator, force=True)

    assert events[-1].phase is ImportPhase.COMPLETED
    library = await store.fetch_library()
    assert [entry["show_id"] for entry in library] == ["show-a"]
    assert library[0]["is_pinned"] is True
    show = await store.fetch_show("show-a")
    assert show.is_in_library is True
    assert show.library_added_at == 100


async def test_library_restore_failure_does_not_fail_import(store, settings, tmp_path, source, monkeypatch):
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)
    await collect(orchestrator)
    await store.add_to_library("gd1977-05-08", added_at=1)

    async def broken_restore(entries):
        raise StoreError("restore library", RuntimeError("disk full"))

    monkeypatch.setattr(store, "restore_library", broken_restore)
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)
    events = await collect(orchestrator, force=True)

    assert events[-1].phase is ImportPhase.COMPLETED
    assert await store.count_library() == 0


async def test_malformed_show_is_skipped(store, settings, tmp_path):
    shows = [show_doc(f"gd1977-05-{day:02d}", f"1977-05-{day:02d}") for day in range(1, 10)]
    source = write_archive_dir(tmp_path / "source", shows, raw_show_files={"gd1977-05-99.json": "{ truncated"})
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)

    events = await collect(orchestrator)

    assert events[-1].phase is ImportPhase.COMPLETED
    assert ImportPhase.FAILED not in phases(events)
    assert await store.count_shows() == 9
    reading = [e for e in events if e.phase is ImportPhase.READING_SHOWS]
    assert reading[-1].processed == reading[-1].total == 10


async def test_recording_progress_counts_only_attributable_files(store, tmp_path, settings):
    settings.import_batch_size = 2
    settings.recording_progress_interval = 1000
    shows = [show_doc("show-1", "1977-05-08", recordings=["r1", "r2", "r3"]),
             show_doc("show-2", "1977-05-09", recordings=["r3", "r4", "r5", "missing"])]
    recordings = {f"r{i}": recording_doc() for i in range(1, 6)}
    recordings["unowned-1"] = recording_doc()
    recordings["unowned-2"] = recording_doc()
    recordings["r5"] = {"rating": "not a number", "tracks": "nope"}
    source = write_archive_dir(tmp_path / "source", shows, recordings)
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)

    events = await collect(orchestrator)

    recording_events = [e for e in events if e.phase is ImportPhase.IMPORTING_RECORDINGS]
    assert all(e.total == 5 for e in recording_events)
    deltas = [b.processed - a.processed for a, b in zip(recording_events, recording_events[1:])]
    assert recording_events[0].processed == 0
    assert sum(deltas) == 5
    assert all(delta >= 0 for delta in deltas)
    assert len(recording_events) > 2
    # r3 belongs to both shows
    assert await store.count_recordings() == 6


async def test_unparseable_recording_is_skipped(store, settings, tmp_path):
    shows = [show_doc("show-1", "1977-05-08", recordings=["good", "bad"])]
    source = write_archive_dir(tmp_path / "source", shows, {"good": recording_doc()})
    (source / "recordings" / "bad.json").write_text("not json")
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)

    events = await collect(orchestrator)

    assert events[-1].phase is ImportPhase.COMPLETED
    assert await store.count_recordings() == 1


async def test_wrapped_archive_root(store, settings, tmp_path, source):
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source, wrapper="dead-metadata-2.1.0/")

    events = await collect(orchestrator)

    assert events[-1].phase is ImportPhase.COMPLETED
    assert await store.count_shows() == 3
    assert (await store.fetch_collection("spring-77")) is not None


async def test_missing_manifest_uses_release_tag(store, settings, tmp_path):
    source = write_archive_dir(tmp_path / "source", default_shows())
    orchestrator, _ = make_orchestrator(store, settings, tmp_path, source)

    await collect(orchestrator)

    version = await store.fetch_data_version()
    assert version.data_version == "v2.1.0"
    assert version.git_commit is None
    assert await store.count_collections() == 0


async def test_missing_data_asset_fails(store, settings, tmp_path, source):
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source, asset_name="source.tar.gz")

    events = await collect(orchestrator)

    assert events[-1].phase is ImportPhase.FAILED
    assert events[-1].message == "No data ZIP asset found in latest release"
    assert phases(events).count(ImportPhase.FAILED) == 1
    assert client.downloads == []
    assert await store.has_data_version() is False


async def test_download_failure_fails_and_cleans_up(store, settings, tmp_path, source):
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)

    async def failing_download(asset):
        raise DownloadFailedError(502, asset.browser_download_url)

    client.download = failing_download

    events = await collect(orchestrator)

    assert events[-1].phase is ImportPhase.FAILED
    assert events[-1].message == "Download failed with HTTP 502"
    assert await store.count_shows() == 0


async def test_version_check_failure_is_fatal(store, settings, tmp_path, source, monkeypatch):
    async def broken_check():
        raise StoreError("fetch data version", RuntimeError("database is locked"))

    monkeypatch.setattr(store, "has_data_version", broken_check)
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)

    events = await collect(orchestrator)

    assert phases(events) == [ImportPhase.CHECKING, ImportPhase.FAILED]
    assert "database is locked" in events[-1].message
    assert client.fetch_calls == 0


async def test_temp_files_removed_after_success(store, settings, tmp_path, source):
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)

    await collect(orchestrator)

    assert not client.downloads[0].exists()
    assert list((tmp_path / "work").iterdir()) == []


async def test_abandoned_run_stops_and_cleans_up(store, settings, tmp_path, source):
    settings.import_batch_size = 1
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)

    stream = orchestrator.run(force=True)
    async for event in stream:
        if event.phase is ImportPhase.IMPORTING_SHOWS:
            break
    await stream.aclose()

    assert await store.count_shows() == 1
    assert await store.count_recordings() == 0
    assert await store.has_data_version() is False
    assert not client.downloads[0].exists()
    assert list((tmp_path / "work").iterdir()) == []


async def test_release_without_assets_fails(store, settings, tmp_path, source):
    orchestrator, client = make_orchestrator(store, settings, tmp_path, source)
    client.release = ReleaseMetadata(tag_name="v0.0.1")

    events = await collect(orchestrator)

    assert events[-1].phase is ImportPhase.FAILED
    assert events[-1].fraction is None
