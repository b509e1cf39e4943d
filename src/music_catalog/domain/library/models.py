"""
Music library domain models.

Contains immutable records for tracks, the entities they resolve to, and
the metadata record produced by extraction.
"""

import json
import sqlite3
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
UNKNOWN_GENRE = "Unknown Genre"
UNKNOWN_COMPOSER = "Unknown Composer"
UNKNOWN_ALBUM_ARTIST = "Unknown Album Artist"
UNKNOWN_YEAR = "Unknown Year"

# Stored on insert when the tag is missing
TRACK_PLACEHOLDERS = {
    "artist": UNKNOWN_ARTIST,
    "album": UNKNOWN_ALBUM,
    "genre": UNKNOWN_GENRE,
    "composer": UNKNOWN_COMPOSER,
}


@dataclass
class ExtendedMetadata:
    """Auxiliary tag fields stored as one JSON document per track."""

    isrc: Optional[str] = None
    barcode: Optional[str] = None
    catalog_number: Optional[str] = None
    label: Optional[str] = None
    publisher: Optional[str] = None
    copyright: Optional[str] = None
    musicbrainz_artist_id: Optional[str] = None
    musicbrainz_album_id: Optional[str] = None
    musicbrainz_album_artist_id: Optional[str] = None
    musicbrainz_track_id: Optional[str] = None
    musicbrainz_release_group_id: Optional[str] = None
    acoustid: Optional[str] = None
    producer: Optional[str] = None
    engineer: Optional[str] = None
    lyricist: Optional[str] = None
    conductor: Optional[str] = None
    remixer: Optional[str] = None
    mood: Optional[str] = None
    language: Optional[str] = None
    lyrics: Optional[str] = None
    comment: Optional[str] = None
    encoded_by: Optional[str] = None
    encoder_settings: Optional[str] = None
    replay_gain_track: Optional[str] = None
    replay_gain_album: Optional[str] = None
    key: Optional[str] = None
    custom_fields: dict = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any(
            getattr(self, f.name) for f in fields(self)
        )

    def to_json(self) -> Optional[str]:
        """Serialize set fields as sorted-key JSON (None when nothing is set)."""
        data = {k: v for k, v in asdict(self).items() if v}
        if not data:
            return None
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, text: Optional[str]) -> "ExtendedMetadata":
        if not text:
            return cls()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return cls()
        known = {f.name for f in fields(cls)}
        extra = {k: v for k, v in data.items() if k not in known}
        values = {k: v for k, v in data.items() if k in known}
        if extra:
            values["custom_fields"] = {**values.get("custom_fields", {}), **extra}
        return cls(**values)


@dataclass
class TrackMetadata:
    """Result of extracting tags from one audio file.

    Every field is optional except duration, which defaults to 0.
    """

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    composer: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[str] = None
    duration: float = 0.0  # in seconds
    artwork_data: Optional[bytes] = None

    album_artist: Optional[str] = None
    track_number: Optional[int] = None
    total_tracks: Optional[int] = None
    disc_number: Optional[int] = None
    total_discs: Optional[int] = None
    rating: Optional[int] = None
    compilation: Optional[bool] = None
    release_date: Optional[str] = None
    original_release_date: Optional[str] = None
    bpm: Optional[int] = None
    media_type: Optional[str] = None

    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    codec: Optional[str] = None
    bit_depth: Optional[int] = None

    sort_title: Optional[str] = None
    sort_artist: Optional[str] = None
    sort_album: Optional[str] = None
    sort_album_artist: Optional[str] = None

    extended: ExtendedMetadata = field(default_factory=ExtendedMetadata)


@dataclass(frozen=True)
class Track:
    """A catalog track, identified by its row id.

    Records are immutable; a changed track is re-read from the store.
    """

    id: int
    folder_id: int
    path: str
    filename: str
    album_id: Optional[int] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    composer: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[str] = None
    duration: float = 0.0
    format: Optional[str] = None
    file_size: Optional[int] = None
    date_added: Optional[str] = None
    date_modified: Optional[str] = None
    artwork_data: Optional[bytes] = field(default=None, repr=False)
    is_favorite: bool = False
    play_count: int = 0
    last_played_date: Optional[str] = None
    album_artist: Optional[str] = None
    track_number: Optional[int] = None
    total_tracks: Optional[int] = None
    disc_number: Optional[int] = None
    total_discs: Optional[int] = None
    rating: Optional[int] = None
    compilation: bool = False
    release_date: Optional[str] = None
    original_release_date: Optional[str] = None
    bpm: Optional[int] = None
    media_type: Optional[str] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    codec: Optional[str] = None
    bit_depth: Optional[int] = None
    sort_title: Optional[str] = None
    sort_artist: Optional[str] = None
    sort_album: Optional[str] = None
    sort_album_artist: Optional[str] = None
    extended_metadata: Optional[str] = field(default=None, repr=False)
    is_duplicate: bool = False
    primary_track_id: Optional[int] = None
    duplicate_group_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Track":
        """Build a Track from a tracks row, ignoring unknown columns."""
        keys = set(row.keys())
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in keys:
                values[f.name] = row[f.name]
        for flag in ("is_favorite", "compilation", "is_duplicate"):
            if flag in values:
                values[flag] = bool(values[flag])
        if values.get("duration") is None:
            values["duration"] = 0.0
        if values.get("play_count") is None:
            values["play_count"] = 0
        return cls(**values)

    @property
    def display_title(self) -> str:
        return self.title or self.filename

    @property
    def extended(self) -> ExtendedMetadata:
        return ExtendedMetadata.from_json(self.extended_metadata)


@dataclass(frozen=True)
class Folder:
    """A watched folder."""

    id: int
    name: str
    path: str
    track_count: int = 0
    date_added: Optional[str] = None
    date_updated: Optional[str] = None
    bookmark_data: Optional[bytes] = field(default=None, repr=False)
    shasum_hash: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Folder":
        keys = set(row.keys())
        return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in keys})


@dataclass(frozen=True)
class Artist:
    id: int
    name: str
    normalized_name: str
    sort_name: Optional[str] = None
    total_tracks: int = 0
    total_albums: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Artist":
        keys = set(row.keys())
        return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in keys})


@dataclass(frozen=True)
class Album:
    id: int
    title: str
    normalized_title: str
    sort_title: Optional[str] = None
    artist_id: Optional[int] = None
    release_date: Optional[str] = None
    release_year: Optional[int] = None
    total_tracks: Optional[int] = None
    total_discs: Optional[int] = None
    label: Optional[str] = None
    artist_name: Optional[str] = None  # Primary artist, when joined

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Album":
        keys = set(row.keys())
        return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in keys})


@dataclass(frozen=True)
class FilterItem:
    """One value of a filter dimension with the number of matching tracks."""

    name: str
    count: int
