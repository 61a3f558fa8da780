"""Reverse index and `recordings` rows.

Recording files are keyed by archive.org identifier and carry no show id, so
the importer first inverts every show's ``recordings`` list into a
``recording_id -> [show_id, ...]`` map and then attributes each recording file
through it. A recording listed by several shows becomes one row per show.
"""

import json
from typing import Any, Iterable

from deadly_sync.ingestion.documents import RecordingDocument, ShowDocument, TrackData

RecordingRow = dict[str, Any]


def build_reverse_index(shows: Iterable[ShowDocument]) -> dict[str, list[str]]:
    """Map each recording id to the ids of the shows that list it.

    Owning show ids appear once per recording, in the order they were first seen.
    """
    index: dict[str, list[str]] = {}
    for show in shows:
        for recording_id in show.recordings:
            owners = index.setdefault(recording_id, [])
            if show.show_id not in owners:
                owners.append(show.show_id)
    return index


def _encode_tracks(tracks: list[TrackData]) -> str | None:
    if not tracks:
        return None
    return json.dumps([track.model_dump() for track in tracks], ensure_ascii=False)


def build_recording_record(
    recording_id: str,
    doc: RecordingDocument,
    show_id: str,
    now: int,
) -> RecordingRow:
    return {
        "identifier": recording_id,
        "show_id": show_id,
        "source_type": doc.source_type,
        "rating": doc.rating,
        "raw_rating": doc.raw_rating,
        "review_count": doc.review_count,
        "confidence": doc.confidence,
        "high_ratings": doc.high_ratings,
        "low_ratings": doc.low_ratings,
        "taper": doc.taper,
        "source": doc.source,
        "lineage": doc.lineage,
        "source_type_string": doc.source_type,
        "track_count": len(doc.tracks),
        "tracks_raw": _encode_tracks(doc.tracks),
        "collection_timestamp": now,
    }


def build_recording_records(
    recording_id: str,
    doc: RecordingDocument,
    show_ids: list[str],
    now: int,
) -> list[RecordingRow]:
    """One row per owning show."""
    return [build_recording_record(recording_id, doc, show_id, now) for show_id in show_ids]
