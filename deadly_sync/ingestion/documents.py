"""Pydantic schemas for the JSON documents inside the metadata archive.

The archive is produced by an external pipeline and is loosely typed: optional
fields go missing, arrive as null, or occasionally carry the wrong type. Only
the identifying fields of a document are required; every other field falls
back to its default when it is absent or malformed, so one odd value never
costs us the whole document.
"""

import enum
import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticUseDefault


class _LenientModel(BaseModel):
    """Base model whose optional fields reset to their default on bad input."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_error(cls, value, handler, info):
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            if field.is_required():
                raise
            raise PydanticUseDefault()


# ============ Setlist ============

class SetlistKind(str, enum.Enum):
    NULL = "null"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"
    SCALAR = "scalar"


@dataclass(frozen=True)
class Setlist:
    """The polymorphic ``setlist`` field, kept opaque.

    The upstream schema has used null, free text, a list of sets and a keyed
    object over time. We keep whatever arrived and only interpret it through
    ``extract_song_names``.
    """

    kind: SetlistKind
    payload: Any = None

    @classmethod
    def from_value(cls, value: Any) -> "Setlist":
        if isinstance(value, Setlist):
            return value
        if value is None:
            return cls(SetlistKind.NULL)
        if isinstance(value, str):
            return cls(SetlistKind.STRING, value)
        if isinstance(value, list):
            return cls(SetlistKind.ARRAY, value)
        if isinstance(value, dict):
            return cls(SetlistKind.OBJECT, value)
        return cls(SetlistKind.SCALAR, value)

    def to_json(self) -> str | None:
        """Serialized payload for the setlist_raw column (None for null)."""
        if self.kind is SetlistKind.NULL:
            return None
        return json.dumps(self.payload, ensure_ascii=False)


def extract_song_names(setlist: Setlist | None) -> list[str]:
    """Song names from a ``[{"songs": [{"name": ...}]}]`` setlist.

    Any other shape yields no songs.
    """
    if setlist is None or setlist.kind is not SetlistKind.ARRAY:
        return []

    songs = []
    for entry in setlist.payload:
        if not isinstance(entry, dict):
            continue
        entry_songs = entry.get("songs")
        if not isinstance(entry_songs, list):
            continue
        for song in entry_songs:
            if isinstance(song, dict):
                name = song.get("name")
                if isinstance(name, str) and name:
                    songs.append(name)
    return songs


# ============ Show documents ============

class LineupMember(_LenientModel):
    name: str
    instruments: str | None = None
    image_url: str | None = None


class TicketImage(_LenientModel):
    url: str
    filename: str | None = None
    side: str | None = None


class ShowPhoto(_LenientModel):
    url: str
    filename: str | None = None
    thumbnail_url: str | None = None


class ShowDocument(_LenientModel):
    """One ``shows/<show_id>.json`` document."""

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    show_id: str
    band: str
    venue: str
    date: str
    location_raw: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    url: str | None = None
    setlist_status: str | None = None
    setlist: Setlist = Field(default_factory=lambda: Setlist(SetlistKind.NULL))
    lineup_status: str | None = None
    lineup: list[LineupMember] | None = None
    recordings: list[str] = []
    best_recording: str | None = None
    avg_rating: float = 0.0
    recording_count: int = 0
    total_high_ratings: int = 0
    total_low_ratings: int = 0
    source_types: dict[str, int] = {}
    ticket_images: list[TicketImage] = []
    photos: list[ShowPhoto] = []

    @field_validator("setlist", mode="before")
    @classmethod
    def _wrap_setlist(cls, value):
        return Setlist.from_value(value)

    @property
    def total_reviews(self) -> int:
        return self.total_high_ratings + self.total_low_ratings


# ============ Recording documents ============

class TrackFormat(_LenientModel):
    format: str
    filename: str
    bitrate: str | None = None


class TrackData(_LenientModel):
    track: str
    title: str
    duration: float = 0.0
    formats: list[TrackFormat] = []


class RecordingDocument(_LenientModel):
    """One ``recordings/<identifier>.json`` document.

    The identifier is not part of the document; it is the file name stem.
    """

    rating: float = 0.0
    review_count: int = 0
    source_type: str | None = None
    confidence: float = 0.0
    date: str = ""
    venue: str = ""
    location: str = ""
    raw_rating: float = 0.0
    high_ratings: int = 0
    low_ratings: int = 0
    tracks: list[TrackData] = []
    taper: str | None = None
    source: str | None = None
    lineage: str | None = None


# ============ Collections ============

class DateRange(_LenientModel):
    start: str
    end: str


class ExclusionRange(_LenientModel):
    """Exclusion ranges use ``from``/``to`` in the source file."""

    start: str = Field(alias="from")
    end: str = Field(alias="to")


class ShowSelector(_LenientModel):
    """Declarative rules selecting the shows of a collection."""

    show_ids: list[str] = []
    dates: list[str] = []
    ranges: list[DateRange] = []
    range: DateRange | None = None
    exclusion_ranges: list[ExclusionRange] = []
    exclusion_dates: list[str] = []
    venues: list[str] = []
    years: list[int] = []


class CollectionDocument(_LenientModel):
    """One entry of ``collections.json``."""

    id: str
    name: str
    description: str
    tags: list[str] = []
    show_selector: ShowSelector | None = None


# ============ Manifest ============

class ManifestPackage(_LenientModel):
    version: str | None = None


class ManifestBuildInfo(_LenientModel):
    git_commit: str | None = None
    build_timestamp: str | None = None


class Manifest(_LenientModel):
    """Optional ``manifest.json`` at the archive root."""

    package: ManifestPackage | None = None
    build_info: ManifestBuildInfo | None = None

    @property
    def version(self) -> str | None:
        return self.package.version if self.package else None

    @property
    def git_commit(self) -> str | None:
        return self.build_info.git_commit if self.build_info else None

    @property
    def build_timestamp(self) -> str | None:
        return self.build_info.build_timestamp if self.build_info else None
