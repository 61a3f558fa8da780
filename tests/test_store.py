from deadly_sync.db.inspector import get_database_status
from deadly_sync.db.store import escape_like
from tests.factories import insert_shows, show_doc

SHOWS = [
    show_doc("gd1977-05-08", "1977-05-08", venue="Barton Hall", setlist=[{"songs": [{"name": "Scarlet Begonias"}]}]),
    show_doc("gd1977-05-09", "1977-05-09", venue="War Memorial", location_raw="Buffalo, NY"),
    show_doc("gd1972-05-04", "1972-05-04", venue="Olympia Theatre", location_raw="Paris, France"),
]


def test_escape_like():
    assert escape_like("100%_done\\") == "100\\%\\_done\\\\"


async def test_search_requires_every_token(store):
    await insert_shows(store, SHOWS)

    assert [s.show_id for s in await store.search_shows("5/8/77")] == ["gd1977-05-08"]
    assert [s.show_id for s in await store.search_shows("scarlet barton")] == ["gd1977-05-08"]
    assert [s.show_id for s in await store.search_shows("1977")] == ["gd1977-05-08", "gd1977-05-09"]
    assert await store.search_shows("scarlet buffalo") == []
    assert await store.search_shows("   ") == []


async def test_library_rows_cascade_with_their_shows(store):
    await insert_shows(store, SHOWS)
    await store.add_to_library("gd1977-05-08", added_at=1000, is_pinned=True)

    show = await store.fetch_show("gd1977-05-08")
    assert show.is_in_library is True
    assert show.library_added_at == 1000
    assert await store.count_library() == 1

    await store.clear_derived_data()

    assert await store.count_shows() == 0
    assert await store.count_search_rows() == 0
    assert await store.count_library() == 0


async def test_restore_library_keeps_user_fields(store):
    await insert_shows(store, SHOWS)
    await store.add_to_library(
        "gd1977-05-09", added_at=2000, library_notes="Dancin'", preferred_recording_id="gd77-05-09.sbd",
    )
    saved = await store.fetch_library()

    await store.clear_derived_data()
    await insert_shows(store, SHOWS)
    assert await store.restore_library(saved) == 1

    [entry] = await store.fetch_library()
    assert entry["library_notes"] == "Dancin'"
    assert entry["preferred_recording_id"] == "gd77-05-09.sbd"
    assert (await store.fetch_show("gd1977-05-09")).is_in_library is True
    assert (await store.fetch_show("gd1977-05-08")).is_in_library is False


async def test_data_version_upsert_replaces_singleton(store):
    assert await store.has_data_version() is False

    values = {
        "data_version": "2.0.0",
        "package_name": "dead-metadata",
        "version_type": "release",
        "imported_at": 1,
        "total_shows": 3,
    }
    await store.upsert_data_version(values)
    await store.upsert_data_version({**values, "data_version": "2.1.0"})

    version = await store.fetch_data_version()
    assert version.id == 1
    assert version.data_version == "2.1.0"


async def test_count_venues_and_show_lookups(store):
    await insert_shows(store, SHOWS + [show_doc("gd1980-05-08", "1980-05-08", venue="Barton Hall")])

    assert await store.count_venues() == 3
    assert await store.show_ids_by_year(1977) == ["gd1977-05-08", "gd1977-05-09"]
    assert await store.show_ids_by_date("1972-05-04") == ["gd1972-05-04"]


async def test_database_status(store):
    status = await get_database_status(store)
    assert status["needs_import"] is True
    assert status["table_counts"]["shows"] == 0

    await insert_shows(store, SHOWS)
    await store.upsert_data_version({
        "data_version": "2.1.0",
        "package_name": "dead-metadata",
        "version_type": "release",
        "imported_at": 1_700_000_000_000,
        "git_tag": "v2.1.0",
    })

    status = await get_database_status(store)
    assert status["has_data"] is True
    assert status["consistent"] is True
    assert status["show_count"] == 3
    assert status["data_version"] == "2.1.0"
    assert status["imported_at"].startswith("2023-11-14")
