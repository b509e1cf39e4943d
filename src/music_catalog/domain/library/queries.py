"""Read-side queries over the catalog.

Filter dimensions (artists, album artists, composers, albums, genres,
years, decades), track lookups and aggregate counts. Every query that
enumerates tracks goes through ``apply_duplicate_filter`` so the
hide-duplicates preference is honored in one place.

Query failures are logged and return empty results.
"""

import re
import sqlite3
from dataclasses import dataclass
from typing import List, Optional, Tuple

from loguru import logger

from music_catalog.core.database import get_db_connection
from music_catalog.core.preferences import Preferences

from .models import (
    UNKNOWN_ALBUM,
    UNKNOWN_ALBUM_ARTIST,
    UNKNOWN_ARTIST,
    UNKNOWN_COMPOSER,
    UNKNOWN_GENRE,
    UNKNOWN_YEAR,
    Album,
    Artist,
    FilterItem,
    Track,
)
from .normalization import normalize_album_title, normalize_artist_name


@dataclass(frozen=True)
class FilterDimension:
    column: str
    placeholder: str
    role: Optional[str] = None  # track_artists role, artist dimensions only


FILTER_DIMENSIONS = {
    "artists": FilterDimension("artist", UNKNOWN_ARTIST, "artist"),
    "album_artists": FilterDimension("album_artist", UNKNOWN_ALBUM_ARTIST, "album_artist"),
    "composers": FilterDimension("composer", UNKNOWN_COMPOSER, "composer"),
    "albums": FilterDimension("album", UNKNOWN_ALBUM),
    "genres": FilterDimension("genre", UNKNOWN_GENRE),
    "years": FilterDimension("year", UNKNOWN_YEAR),
    "decades": FilterDimension("year", UNKNOWN_YEAR),
}

# Year-like dimensions read tracks.year; the others read the entity tables
_YEAR_DIMENSIONS = {"years", "decades"}

_FOUR_DIGIT_YEAR = "t.year GLOB '[0-9][0-9][0-9][0-9]*'"
_DECADE_EXPR = "(CAST(SUBSTR(t.year, 1, 4) AS INTEGER) / 10) * 10"
_DECADE_LABEL = re.compile(r"^(\d{4})s$")

SORTABLE_COLUMNS = {
    "title", "artist", "album", "album_artist", "composer", "genre", "year",
    "duration", "play_count", "last_played_date", "date_added", "rating",
    "track_number", "bitrate",
}

DEFAULT_TRACK_ORDER = (
    "artist COLLATE NOCASE, album COLLATE NOCASE, "
    "IFNULL(disc_number, 1), IFNULL(track_number, 0), title COLLATE NOCASE"
)
ALBUM_TRACK_ORDER = (
    "IFNULL(disc_number, 1), IFNULL(track_number, 0), title COLLATE NOCASE"
)


def get_filter_dimension(filter_type: str) -> FilterDimension:
    """Look up a filter dimension.

    Raises:
        ValueError: If the filter type is unknown
    """
    dimension = FILTER_DIMENSIONS.get(filter_type)
    if dimension is None:
        raise ValueError(
            f"Invalid filter type: {filter_type}. Must be one of {sorted(FILTER_DIMENSIONS)}"
        )
    return dimension


def apply_duplicate_filter(
    sql: str,
    params: list,
    preferences: Optional[Preferences],
    alias: Optional[str] = None,
) -> Tuple[str, list]:
    """Restrict a track query to canonical tracks when duplicates are hidden.

    ``sql`` must already end in a WHERE clause (use ``WHERE 1 = 1`` when
    there is nothing else to filter on); the condition is appended with AND.

    Returns:
        Tuple of (sql, params)
    """
    params = list(params)
    if preferences is None or not preferences.hide_duplicates:
        return sql, params
    column = f"{alias}.is_duplicate" if alias else "is_duplicate"
    return f"{sql} AND {column} = 0", params


def _order_clause(preferences: Optional[Preferences], view: str, default: str) -> str:
    if preferences is None or view not in preferences.sort_preferences:
        return default
    column, ascending = preferences.sort_preferences[view]
    if column not in SORTABLE_COLUMNS:
        logger.warning(f"Ignoring unknown sort column {column!r} for {view}")
        return default
    direction = "ASC" if ascending else "DESC"
    return f"{column} COLLATE NOCASE {direction}, {default}"


def _fetch_tracks(sql: str, params: list, what: str) -> List[Track]:
    try:
        with get_db_connection() as conn:
            cursor = conn.execute(sql, params)
            return [Track.from_row(row) for row in cursor.fetchall()]
    except sqlite3.Error as e:
        logger.warning(f"Query for {what} failed: {e}")
        return []


def _value_source(filter_type: str, dimension: FilterDimension) -> Tuple[str, str, str, list]:
    """Where a dimension's named values come from.

    Artist dimensions enumerate artists linked in the dimension's role,
    albums group album rows by normalized title, and genres come from
    track_genres, so one value covers every spelling the resolver merged.
    Every source joins ``tracks t``.

    Returns:
        Tuple of (name expression, grouping key, FROM ... WHERE clause, params)
    """
    if dimension.role:
        return (
            "a.name",
            "a.id",
            """
            FROM track_artists ta
            JOIN artists a ON a.id = ta.artist_id
            JOIN tracks t ON t.id = ta.track_id
            WHERE ta.role = ?
            """,
            [dimension.role],
        )
    if filter_type == "albums":
        return (
            "MIN(al.title)",
            "al.normalized_title",
            "FROM albums al JOIN tracks t ON t.album_id = al.id WHERE 1 = 1",
            [],
        )
    if filter_type == "genres":
        return (
            "g.name",
            "g.id",
            """
            FROM track_genres tg
            JOIN genres g ON g.id = tg.genre_id
            JOIN tracks t ON t.id = tg.track_id
            WHERE 1 = 1
            """,
            [],
        )
    if filter_type == "decades":
        return _DECADE_EXPR, _DECADE_EXPR, f"FROM tracks t WHERE {_FOUR_DIGIT_YEAR}", []
    return "t.year", "t.year", f"FROM tracks t WHERE {_FOUR_DIGIT_YEAR}", []


def _named_items_query(
    filter_type: str,
    dimension: FilterDimension,
    preferences: Optional[Preferences],
) -> Tuple[str, str, list]:
    """Grouped (name, count) query over a dimension's named values.

    Returns:
        Tuple of (sql without ORDER BY, order clause, params)
    """
    name_expr, group_expr, source, params = _value_source(filter_type, dimension)
    sql, params = apply_duplicate_filter(
        f"SELECT {name_expr} AS name, COUNT(DISTINCT t.id) AS count {source}",
        params,
        preferences,
        "t",
    )
    order = "name DESC" if filter_type in _YEAR_DIMENSIONS else "name COLLATE NOCASE"
    return f"{sql} GROUP BY {group_expr}", order, params


def _missing_value_condition(filter_type: str, dimension: FilterDimension) -> Tuple[str, list]:
    """SQL over ``tracks t`` matching tracks in the dimension's Unknown bucket."""
    if filter_type in _YEAR_DIMENSIONS:
        return f"(t.year IS NULL OR t.year = '' OR NOT {_FOUR_DIGIT_YEAR})", []
    if dimension.role:
        return (
            "NOT EXISTS (SELECT 1 FROM track_artists ta WHERE ta.track_id = t.id AND ta.role = ?)",
            [dimension.role],
        )
    if filter_type == "albums":
        return "t.album_id IS NULL", []
    return "NOT EXISTS (SELECT 1 FROM track_genres tg WHERE tg.track_id = t.id)", []


def _named_value_condition(
    filter_type: str, dimension: FilterDimension, value: str
) -> Tuple[str, list]:
    """SQL over ``tracks t`` matching tracks filed under a named value."""
    if filter_type == "decades":
        start = _decade_start(value)
        return (
            f"{_FOUR_DIGIT_YEAR} AND CAST(SUBSTR(t.year, 1, 4) AS INTEGER) BETWEEN ? AND ?",
            [start, start + 9],
        )
    if filter_type == "years":
        return "t.year = ?", [value]
    if dimension.role:
        return (
            """t.id IN (
                SELECT ta.track_id FROM track_artists ta
                JOIN artists a ON a.id = ta.artist_id
                WHERE a.normalized_name = ? AND ta.role = ?
            )""",
            [normalize_artist_name(value), dimension.role],
        )
    if filter_type == "albums":
        return (
            "t.album_id IN (SELECT id FROM albums WHERE normalized_title = ?)",
            [normalize_album_title(value)],
        )
    return (
        """t.id IN (
            SELECT tg.track_id FROM track_genres tg
            JOIN genres g ON g.id = tg.genre_id
            WHERE g.name = ?
        )""",
        [value.strip()],
    )


def _count_missing(
    conn: sqlite3.Connection,
    filter_type: str,
    dimension: FilterDimension,
    preferences: Optional[Preferences],
) -> int:
    condition, params = _missing_value_condition(filter_type, dimension)
    sql, params = apply_duplicate_filter(
        f"SELECT COUNT(*) AS count FROM tracks t WHERE {condition}", params, preferences, "t"
    )
    return conn.execute(sql, params).fetchone()["count"]


def _decade_start(value: str) -> int:
    match = _DECADE_LABEL.match(value.strip())
    if not match:
        raise ValueError(f"Invalid decade: {value!r}. Expected a value like '1990s'")
    return int(match.group(1)) // 10 * 10


def _item_name(filter_type: str, name) -> str:
    return f"{name}s" if filter_type == "decades" else str(name)


def get_distinct_values(
    filter_type: str, preferences: Optional[Preferences] = None
) -> List[str]:
    """Get the distinct values of a filter dimension.

    Years and decades are listed newest first, everything else
    alphabetically. The dimension's Unknown placeholder is appended last,
    and only when at least one track carries it.

    Raises:
        ValueError: If the filter type is unknown
    """
    dimension = get_filter_dimension(filter_type)
    sql, order, params = _named_items_query(filter_type, dimension, preferences)

    try:
        with get_db_connection() as conn:
            rows = conn.execute(f"{sql} ORDER BY {order}", params).fetchall()
            missing = _count_missing(conn, filter_type, dimension, preferences)
    except sqlite3.Error as e:
        logger.warning(f"Listing {filter_type} failed: {e}")
        return []

    values = [_item_name(filter_type, row["name"]) for row in rows]
    if missing:
        values.append(dimension.placeholder)
    return values


def get_tracks_by_filter_value(
    filter_type: str, value: str, preferences: Optional[Preferences] = None
) -> List[Track]:
    """Get tracks filed under ``value``.

    Artists match by normalized name in the dimension's role, albums by
    normalized title and genres through the track's genre links. The
    Unknown placeholder selects tracks with no value.

    Raises:
        ValueError: If the filter type or decade label is invalid
    """
    dimension = get_filter_dimension(filter_type)

    if value == dimension.placeholder:
        condition, params = _missing_value_condition(filter_type, dimension)
    else:
        condition, params = _named_value_condition(filter_type, dimension, value)

    sql, params = apply_duplicate_filter(
        f"SELECT t.* FROM tracks t WHERE {condition}", params, preferences, "t"
    )
    order = ALBUM_TRACK_ORDER if filter_type == "albums" else DEFAULT_TRACK_ORDER
    return _fetch_tracks(f"{sql} ORDER BY {order}", params, f"{filter_type}={value!r}")


def get_tracks_by_filter_value_containing(
    filter_type: str, value: str, preferences: Optional[Preferences] = None
) -> List[Track]:
    """Get tracks whose filter field contains ``value``.

    For artist dimensions this also matches tracks linked to the artist in
    any role, so "Pharrell Williams" finds "Daft Punk feat. Pharrell
    Williams" as well as tracks he composed.

    Raises:
        ValueError: If the filter type is unknown
    """
    dimension = get_filter_dimension(filter_type)
    if not value or not value.strip():
        return []

    escaped = value.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    condition = f"{dimension.column} LIKE ? ESCAPE '\\'"
    params: list = [f"%{escaped}%"]

    if dimension.role:
        condition = f"""({condition} OR id IN (
            SELECT ta.track_id FROM track_artists ta
            JOIN artists a ON a.id = ta.artist_id
            WHERE a.normalized_name = ?
        ))"""
        params.append(normalize_artist_name(value))

    sql, params = apply_duplicate_filter(
        f"SELECT * FROM tracks WHERE {condition}", params, preferences
    )
    return _fetch_tracks(
        f"{sql} ORDER BY {DEFAULT_TRACK_ORDER}", params, f"{filter_type}~{value!r}"
    )


def get_filter_items_with_counts(
    filter_type: str,
    preferences: Optional[Preferences] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[FilterItem]:
    """Get one page of filter values with their track counts.

    A track with several artists or genres counts once under each of them.
    The Unknown placeholder, when tracks carry it, is the last item of the
    full listing and so appears only on the final page.

    Raises:
        ValueError: If the filter type is unknown
    """
    dimension = get_filter_dimension(filter_type)
    sql, order, params = _named_items_query(filter_type, dimension, preferences)
    total_sql = f"SELECT COUNT(*) AS total FROM ({sql})"
    page_sql = f"{sql} ORDER BY {order} LIMIT ? OFFSET ?"
    page_params = params + [limit if limit is not None else -1, offset]

    try:
        with get_db_connection() as conn:
            rows = conn.execute(page_sql, page_params).fetchall()
            named_total = conn.execute(total_sql, params).fetchone()["total"]
            missing = _count_missing(conn, filter_type, dimension, preferences)
    except sqlite3.Error as e:
        logger.warning(f"Counting {filter_type} failed: {e}")
        return []

    items = [
        FilterItem(name=_item_name(filter_type, row["name"]), count=row["count"])
        for row in rows
    ]

    # The placeholder sits at index named_total of the full listing
    on_this_page = offset <= named_total and (limit is None or named_total < offset + limit)
    if missing and on_this_page:
        items.append(FilterItem(name=dimension.placeholder, count=missing))
    return items



def get_artist_entities() -> List[Artist]:
    """Get artists that have at least one (non-duplicate) track, in sort order."""
    try:
        with get_db_connection() as conn:
            cursor = conn.execute("""
                SELECT * FROM artists
                WHERE total_tracks > 0
                ORDER BY COALESCE(sort_name, name) COLLATE NOCASE
            """)
            return [Artist.from_row(row) for row in cursor.fetchall()]
    except sqlite3.Error as e:
        logger.warning(f"Listing artists failed: {e}")
        return []


def get_album_entities() -> List[Album]:
    """Get albums that have at least one (non-duplicate) track, with their primary artist."""
    try:
        with get_db_connection() as conn:
            cursor = conn.execute("""
                SELECT al.*, ar.name AS artist_name
                FROM albums al
                LEFT JOIN artists ar ON ar.id = al.artist_id
                WHERE al.total_tracks > 0
                ORDER BY COALESCE(al.sort_title, al.title) COLLATE NOCASE
            """)
            return [Album.from_row(row) for row in cursor.fetchall()]
    except sqlite3.Error as e:
        logger.warning(f"Listing albums failed: {e}")
        return []


def get_artist_count() -> int:
    with get_db_connection() as conn:
        return conn.execute(
            "SELECT COUNT(*) AS count FROM artists WHERE total_tracks > 0"
        ).fetchone()["count"]


def get_album_count() -> int:
    with get_db_connection() as conn:
        return conn.execute(
            "SELECT COUNT(*) AS count FROM albums WHERE total_tracks > 0"
        ).fetchone()["count"]


def get_tracks_for_folder(folder_id: int) -> List[Track]:
    """All tracks of a folder, duplicates included."""
    return _fetch_tracks(
        "SELECT * FROM tracks WHERE folder_id = ? ORDER BY path",
        [folder_id],
        f"folder {folder_id}",
    )


def get_tracks_for_album_id(
    album_id: int, preferences: Optional[Preferences] = None
) -> List[Track]:
    sql, params = apply_duplicate_filter(
        "SELECT * FROM tracks WHERE album_id = ?", [album_id], preferences
    )
    return _fetch_tracks(f"{sql} ORDER BY {ALBUM_TRACK_ORDER}", params, f"album {album_id}")


def get_tracks_for_artist_id(
    artist_id: int, preferences: Optional[Preferences] = None
) -> List[Track]:
    """Tracks linked to an artist in any role."""
    sql, params = apply_duplicate_filter(
        """
        SELECT * FROM tracks
        WHERE id IN (SELECT track_id FROM track_artists WHERE artist_id = ?)
        """,
        [artist_id],
        preferences,
    )
    return _fetch_tracks(f"{sql} ORDER BY {DEFAULT_TRACK_ORDER}", params, f"artist {artist_id}")


def get_track_by_id(track_id: int) -> Optional[Track]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
        return Track.from_row(row) if row else None


def get_track_by_path(path: str) -> Optional[Track]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM tracks WHERE path = ?", (str(path),)).fetchone()
        return Track.from_row(row) if row else None


def get_all_tracks(preferences: Optional[Preferences] = None) -> List[Track]:
    """Get every track, sorted by the saved "tracks" view sort when there is one."""
    sql, params = apply_duplicate_filter("SELECT * FROM tracks WHERE 1 = 1", [], preferences)
    order = _order_clause(preferences, "tracks", DEFAULT_TRACK_ORDER)
    return _fetch_tracks(f"{sql} ORDER BY {order}", params, "all tracks")


def get_total_track_count(preferences: Optional[Preferences] = None) -> int:
    sql, params = apply_duplicate_filter(
        "SELECT COUNT(*) AS count FROM tracks WHERE 1 = 1", [], preferences
    )
    with get_db_connection() as conn:
        return conn.execute(sql, params).fetchone()["count"]
