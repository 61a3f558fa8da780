"""Build `shows` and `show_search` rows from parsed show documents.

Everything here is pure: the same document and timestamp always produce the
same rows, which keeps the importer's batching logic free of transformation
details.
"""

import json
import time
from typing import Any

from deadly_sync.ingestion.documents import LineupMember, ShowDocument, extract_song_names

ShowRow = dict[str, Any]
SearchRow = dict[str, Any]

SEARCH_DELIMITERS = ("-", "/", ".")

SOURCE_TYPE_TAGS = (
    ("SBD", "soundboard sbd"),
    ("AUD", "audience aud"),
    ("MATRIX", "matrix"),
)

TOP_RATED_MIN_RATING = 4.0
TOP_RATED_MIN_REVIEWS = 10
POPULAR_MIN_REVIEWS = 50


def current_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def parse_date_components(date: str) -> tuple[int, int, str]:
    """Split ``YYYY-MM-DD`` into ``(year, month, "YYYY-MM")``.

    Dates with fewer than two components degrade to ``(0, 0, date)``.
    """
    parts = date.split("-")
    if len(parts) < 2:
        return 0, 0, date
    return _to_int(parts[0]), _to_int(parts[1]), f"{parts[0]}-{parts[1]}"


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def resolve_cover_image_url(doc: ShowDocument) -> str | None:
    """Front ticket, then a ticket of unknown side, then the first photo."""
    for side in ("front", "unknown"):
        for ticket in doc.ticket_images:
            if ticket.side == side:
                return ticket.url
    if doc.photos:
        return doc.photos[0].url
    return None


def member_names(lineup: list[LineupMember] | None) -> list[str]:
    if not lineup:
        return []
    return [member.name for member in lineup if member.name]


def _date_variants(date: str) -> list[str]:
    year, month, day = date.split("-")
    month_num = _to_int(month)
    day_num = _to_int(day)
    year_short = year[-2:]

    variants = [date, year, year_short, year[:3]]

    for d in SEARCH_DELIMITERS:
        variants.append(f"{month_num}{d}{day_num}{d}{year_short}")  # 5-8-77
        variants.append(f"{month}{d}{day}{d}{year}")  # 05-08-1977
        variants.append(f"{year}{d}{month_num}{d}{day_num}")  # 1977-5-8

    for d in SEARCH_DELIMITERS:
        variants.append(f"{month_num}{d}{year_short}")  # 5-77
        variants.append(f"{year}{d}{month}")  # 1977-05
        variants.append(f"{year}{d}{month_num}")  # 1977-5
        variants.append(f"{year_short}{d}{month_num}")  # 77-5

    return variants


def build_search_text(doc: ShowDocument) -> str:
    """Denormalized text blob matched by substring/prefix search.

    Carries the date in the formats people actually type (5/8/77,
    1977-05-08, 77.5, ...), venue and location, band members, song
    titles and a few quality tags.
    """
    if len(doc.date.split("-")) == 3:
        parts = _date_variants(doc.date)
    else:
        parts = [doc.date]

    parts.append(doc.venue)
    if doc.location_raw:
        parts.append(doc.location_raw)

    members = member_names(doc.lineup)
    if members:
        parts.append(" ".join(members))

    songs = extract_song_names(doc.setlist)
    if songs:
        parts.append(" ".join(songs))

    for key, tag in SOURCE_TYPE_TAGS:
        if key in doc.source_types:
            parts.append(tag)

    total_reviews = doc.total_reviews
    if doc.avg_rating >= TOP_RATED_MIN_RATING and total_reviews >= TOP_RATED_MIN_REVIEWS:
        parts.append("top-rated")
    if total_reviews >= POPULAR_MIN_REVIEWS:
        parts.append("popular")

    return " ".join(parts)


def _encode_lineup(lineup: list[LineupMember] | None) -> str | None:
    if not lineup:
        return None
    return json.dumps(
        [member.model_dump() for member in lineup],
        ensure_ascii=False,
    )


def build_show_record(doc: ShowDocument, now: int) -> ShowRow:
    year, month, year_month = parse_date_components(doc.date)
    songs = extract_song_names(doc.setlist)
    members = member_names(doc.lineup)

    return {
        "show_id": doc.show_id,
        "date": doc.date,
        "year": year,
        "month": month,
        "year_month": year_month,
        "band": doc.band,
        "url": doc.url,
        "venue_name": doc.venue,
        "city": doc.city,
        "state": doc.state,
        "country": doc.country or "USA",
        "location_raw": doc.location_raw,
        "setlist_status": doc.setlist_status,
        "setlist_raw": doc.setlist.to_json(),
        "song_list": ",".join(songs) if songs else None,
        "lineup_status": doc.lineup_status,
        "lineup_raw": _encode_lineup(doc.lineup),
        "member_list": ",".join(members) if members else None,
        "show_sequence": 1,
        "recordings_raw": json.dumps(doc.recordings) if doc.recordings else None,
        "recording_count": doc.recording_count,
        "best_recording_id": doc.best_recording,
        "average_rating": doc.avg_rating if doc.avg_rating > 0 else None,
        "total_reviews": doc.total_reviews,
        "is_in_library": False,
        "library_added_at": None,
        "cover_image_url": resolve_cover_image_url(doc),
        "created_at": now,
        "updated_at": now,
    }


def build_search_record(doc: ShowDocument) -> SearchRow:
    return {"show_id": doc.show_id, "search_text": build_search_text(doc)}


def build_show_records(doc: ShowDocument, now: int) -> tuple[ShowRow, SearchRow]:
    """Both rows for one show document."""
    return build_show_record(doc, now), build_search_record(doc)
