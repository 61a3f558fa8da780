"""
SQLAlchemy ORM models for the local show database.

============================================================================
DERIVED TABLES vs USER TABLES
============================================================================
Derived (wiped and rebuilt by every import from the metadata archive):
- Show: one row per show, keyed by show_id (e.g. "gd1977-05-08")
- ShowSearch: one denormalized search blob per show
- Recording: one row per (archive.org identifier, owning show)
- DeadCollection: curated collections with resolved member show ids
- DataVersion: singleton describing the imported archive

User-owned (never produced by the importer):
- LibraryShow: the user's library; snapshotted and restored around imports
- RecentShow: recently played shows

Recording, LibraryShow and RecentShow reference Show with ON DELETE CASCADE,
which is why the importer snapshots the library before clearing shows.
============================================================================
"""

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, Text, BigInteger,
    ForeignKey, JSON, Index, PrimaryKeyConstraint,
)
from sqlalchemy.orm import relationship

from deadly_sync.db.database import Base


class Show(Base):
    """Show metadata from shows/<show_id>.json."""

    __tablename__ = "shows"

    show_id = Column(String(100), primary_key=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    year_month = Column(String(10), nullable=False)  # YYYY-MM
    band = Column(String(200), nullable=False)
    url = Column(String(500))
    venue_name = Column(String(300), nullable=False)
    city = Column(String(200))
    state = Column(String(100))
    country = Column(String(100), nullable=False, default="USA")
    location_raw = Column(String(300))
    setlist_status = Column(String(50))
    setlist_raw = Column(Text)  # Opaque JSON, shape varies by source
    song_list = Column(Text)  # Comma-separated song names
    lineup_status = Column(String(50))
    lineup_raw = Column(Text)  # JSON list of {name, instruments, image_url}
    member_list = Column(Text)  # Comma-separated member names
    show_sequence = Column(Integer, nullable=False, default=1)
    recordings_raw = Column(Text)  # JSON list of recording identifiers
    recording_count = Column(Integer, nullable=False, default=0)
    best_recording_id = Column(String(200))
    average_rating = Column(Float)  # NULL when unrated
    total_reviews = Column(Integer, nullable=False, default=0)
    is_in_library = Column(Boolean, nullable=False, default=False)
    library_added_at = Column(BigInteger)  # epoch millis
    cover_image_url = Column(String(500))
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    recordings = relationship("Recording", back_populates="show", passive_deletes=True)

    __table_args__ = (
        Index("idx_shows_date", "date"),
        Index("idx_shows_year", "year"),
        Index("idx_shows_year_month", "year_month"),
        Index("idx_shows_venue_name", "venue_name"),
        Index("idx_shows_city", "city"),
        Index("idx_shows_state", "state"),
    )


class ShowSearch(Base):
    """Search surrogate for a show: one text blob matched by substring/prefix."""

    __tablename__ = "show_search"

    show_id = Column(String(100), ForeignKey("shows.show_id", ondelete="CASCADE"), primary_key=True)
    search_text = Column(Text, nullable=False)


class Recording(Base):
    """A recording attributed to one show.

    A recording document referenced by several shows yields one row per show.
    """

    __tablename__ = "recordings"

    identifier = Column(String(200), nullable=False)  # archive.org identifier
    show_id = Column(String(100), ForeignKey("shows.show_id", ondelete="CASCADE"), nullable=False)
    source_type = Column(String(20))  # SBD, AUD, MATRIX, FM, ...
    rating = Column(Float, nullable=False, default=0.0)
    raw_rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    confidence = Column(Float, nullable=False, default=0.0)
    high_ratings = Column(Integer, nullable=False, default=0)
    low_ratings = Column(Integer, nullable=False, default=0)
    taper = Column(Text)
    source = Column(Text)
    lineage = Column(Text)
    source_type_string = Column(String(50))
    track_count = Column(Integer, nullable=False, default=0)
    tracks_raw = Column(Text)  # JSON list of {track, title, duration, formats}
    collection_timestamp = Column(BigInteger, nullable=False)

    show = relationship("Show", back_populates="recordings")

    __table_args__ = (
        PrimaryKeyConstraint("identifier", "show_id", name="pk_recordings"),
        Index("idx_recordings_show_id", "show_id"),
        Index("idx_recordings_source_type", "source_type"),
        Index("idx_recordings_show_rating", "show_id", "rating"),
    )


class DeadCollection(Base):
    """Curated collection with its resolved, sorted member show ids."""

    __tablename__ = "dead_collections"

    id = Column(String(100), primary_key=True)
    name = Column(String(300), nullable=False)
    description = Column(Text, nullable=False)
    tags = Column(JSON, nullable=False)  # list[str]
    show_ids = Column(JSON, nullable=False)  # list[str], sorted by show_id
    total_shows = Column(Integer, nullable=False, default=0)
    primary_tag = Column(String(100))
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_dead_collections_primary_tag", "primary_tag"),
        Index("idx_dead_collections_total_shows", "total_shows"),
    )


class LibraryShow(Base):
    """A show the user saved to their library."""

    __tablename__ = "library_shows"

    show_id = Column(String(100), ForeignKey("shows.show_id", ondelete="CASCADE"), primary_key=True)
    added_to_library_at = Column(BigInteger, nullable=False)
    is_pinned = Column(Boolean, nullable=False, default=False)
    library_notes = Column(Text)
    preferred_recording_id = Column(String(200))
    downloaded_recording_id = Column(String(200))
    downloaded_format = Column(String(50))
    custom_rating = Column(Float)
    last_accessed_at = Column(BigInteger)
    tags = Column(Text)

    __table_args__ = (
        Index("idx_library_shows_added", "added_to_library_at"),
        Index("idx_library_shows_pinned", "is_pinned"),
    )


class RecentShow(Base):
    """Recently played show."""

    __tablename__ = "recent_shows"

    show_id = Column(String(100), ForeignKey("shows.show_id", ondelete="CASCADE"), primary_key=True)
    last_played_timestamp = Column(BigInteger, nullable=False)
    first_played_timestamp = Column(BigInteger, nullable=False)
    total_play_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_recent_shows_last_played", "last_played_timestamp"),
    )


class DataVersion(Base):
    """Singleton (id=1) describing the last successfully imported archive."""

    __tablename__ = "data_version"

    id = Column(Integer, primary_key=True)
    data_version = Column(String(50), nullable=False)
    package_name = Column(String(100), nullable=False)
    version_type = Column(String(50), nullable=False)
    description = Column(Text)
    imported_at = Column(BigInteger, nullable=False)
    git_commit = Column(String(64))
    git_tag = Column(String(100))
    build_timestamp = Column(String(50))
    total_shows = Column(Integer, nullable=False, default=0)
    total_venues = Column(Integer, nullable=False, default=0)
    total_files = Column(Integer, nullable=False, default=0)
    total_size_bytes = Column(BigInteger, nullable=False, default=0)
