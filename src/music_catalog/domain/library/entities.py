"""
Entity resolution: artists, albums and genres.

Maps free-text tag values onto deduplicated rows and links them to tracks
through the junction tables. Every function takes an open connection and
runs inside the caller's write transaction.
"""

import sqlite3
from typing import List, Optional

from loguru import logger

from music_catalog.core.exceptions import EntityResolutionError

from .merge import ALBUM_MERGE_RULES, merge_fields
from .models import UNKNOWN_ALBUM, UNKNOWN_GENRE, TrackMetadata
from .normalization import (
    normalize_album_title,
    normalize_artist_name,
    parse_artists,
    sort_name_for_artist,
    split_genres,
)

TRACK_ARTIST_ROLES = ("artist", "composer", "album_artist")


def _inserted_id(cursor: sqlite3.Cursor, what: str) -> int:
    if not cursor.lastrowid:
        raise EntityResolutionError(f"Insert into {what} returned no row id")
    return cursor.lastrowid


def resolve_artist(
    conn: sqlite3.Connection, name: str, artwork: Optional[bytes] = None
) -> int:
    """Find or create the artist for a single name.

    Artwork is stored only if the artist has none yet.

    Returns:
        Artist ID
    """
    normalized = normalize_artist_name(name)
    if not normalized:
        raise ValueError(f"Cannot resolve empty artist name: {name!r}")

    row = conn.execute(
        "SELECT id, artwork_data FROM artists WHERE normalized_name = ?",
        (normalized,),
    ).fetchone()

    if row:
        if artwork and not row["artwork_data"]:
            conn.execute(
                "UPDATE artists SET artwork_data = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (artwork, row["id"]),
            )
        return row["id"]

    cursor = conn.execute(
        """
        INSERT INTO artists (name, normalized_name, sort_name, artwork_data)
        VALUES (?, ?, ?, ?)
        """,
        (name.strip(), normalized, sort_name_for_artist(name), artwork),
    )
    artist_id = _inserted_id(cursor, "artists")
    logger.debug(f"Created artist {name!r} ({normalized}) as #{artist_id}")
    return artist_id


def link_track_artists(
    conn: sqlite3.Connection,
    track_id: int,
    text: Optional[str],
    role: str,
    artwork: Optional[bytes] = None,
) -> List[int]:
    """Replace a track's artist links for one role.

    Args:
        conn: Connection inside a write transaction
        track_id: Track to link
        text: Raw (possibly multi-valued) tag value
        role: 'artist', 'composer' or 'album_artist'
        artwork: Offered to the first artist only

    Returns:
        Linked artist IDs in position order
    """
    if role not in TRACK_ARTIST_ROLES:
        raise ValueError(f"Invalid artist role: {role}. Must be one of {TRACK_ARTIST_ROLES}")

    conn.execute(
        "DELETE FROM track_artists WHERE track_id = ? AND role = ?", (track_id, role)
    )

    artist_ids = []
    for position, name in enumerate(parse_artists(text)):
        artist_id = resolve_artist(conn, name, artwork if position == 0 else None)
        conn.execute(
            """
            INSERT OR IGNORE INTO track_artists (track_id, artist_id, role, position)
            VALUES (?, ?, ?, ?)
            """,
            (track_id, artist_id, role, position),
        )
        artist_ids.append(artist_id)
    return artist_ids


def _album_artist_names(metadata: TrackMetadata) -> List[str]:
    return parse_artists(metadata.album_artist) or parse_artists(metadata.artist)


def _release_year(metadata: TrackMetadata) -> Optional[int]:
    for value in (metadata.year, metadata.release_date):
        if value and str(value)[:4].isdigit():
            return int(str(value)[:4])
    return None


def link_album_artists(
    conn: sqlite3.Connection, album_id: int, artist_ids: List[int]
) -> None:
    """Add album artists not linked yet.

    The first artist becomes 'primary' only when the album has no artists
    at all; every other new artist is 'featured'.
    """
    rows = conn.execute(
        "SELECT artist_id, position FROM album_artists WHERE album_id = ?",
        (album_id,),
    ).fetchall()
    linked = {row["artist_id"] for row in rows}
    next_position = max((row["position"] for row in rows), default=-1) + 1
    has_artists = bool(rows)

    for index, artist_id in enumerate(artist_ids):
        if artist_id in linked:
            continue
        role = "primary" if index == 0 and not has_artists else "featured"
        conn.execute(
            """
            INSERT OR IGNORE INTO album_artists (album_id, artist_id, role, position)
            VALUES (?, ?, ?, ?)
            """,
            (album_id, artist_id, role, next_position),
        )
        linked.add(artist_id)
        next_position += 1


def resolve_album(
    conn: sqlite3.Connection,
    metadata: TrackMetadata,
    artwork: Optional[bytes] = None,
) -> Optional[int]:
    """Find or create the album a track belongs to.

    Albums are keyed on (normalized title, primary artist). The primary
    artist is the first album artist, falling back to the first track
    artist. Unset album fields are filled from the track; stored values are
    never overwritten.

    Returns:
        Album ID, or None when the track has no album title
    """
    title = (metadata.album or "").strip()
    normalized = normalize_album_title(title)
    if not normalized or title == UNKNOWN_ALBUM:
        return None

    artist_ids = [resolve_artist(conn, name) for name in _album_artist_names(metadata)]
    primary_artist_id = artist_ids[0] if artist_ids else None

    candidate = {
        "release_year": _release_year(metadata),
        "release_date": metadata.release_date,
        "total_discs": metadata.total_discs,
        "label": metadata.extended.label,
        "artwork_data": artwork,
    }

    row = conn.execute(
        """
        SELECT * FROM albums
        WHERE normalized_title = ? AND IFNULL(artist_id, 0) = IFNULL(?, 0)
        """,
        (normalized, primary_artist_id),
    ).fetchone()

    if row is None:
        cursor = conn.execute(
            """
            INSERT INTO albums (
                title, normalized_title, sort_title, artist_id, artwork_data,
                release_date, release_year, total_discs, label
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                title,
                normalized,
                metadata.sort_album,
                primary_artist_id,
                candidate["artwork_data"],
                candidate["release_date"],
                candidate["release_year"],
                candidate["total_discs"],
                candidate["label"],
            ),
        )
        album_id = _inserted_id(cursor, "albums")
        logger.debug(f"Created album {title!r} as #{album_id}")
    else:
        album_id = row["id"]
        changes = merge_fields(ALBUM_MERGE_RULES, row, candidate)
        if changes:
            assignments = ", ".join(f"{column} = ?" for column in changes)
            conn.execute(
                f"UPDATE albums SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*changes.values(), album_id),
            )

    link_album_artists(conn, album_id, artist_ids)
    return album_id


def resolve_genres(
    conn: sqlite3.Connection, track_id: int, genre_text: Optional[str]
) -> List[int]:
    """Replace a track's genre links. Genres match by exact name."""
    conn.execute("DELETE FROM track_genres WHERE track_id = ?", (track_id,))

    genre_ids = []
    for name in split_genres(genre_text):
        if name == UNKNOWN_GENRE:
            continue
        row = conn.execute("SELECT id FROM genres WHERE name = ?", (name,)).fetchone()
        if row:
            genre_id = row["id"]
        else:
            cursor = conn.execute("INSERT INTO genres (name) VALUES (?)", (name,))
            genre_id = _inserted_id(cursor, "genres")
        conn.execute(
            "INSERT OR IGNORE INTO track_genres (track_id, genre_id) VALUES (?, ?)",
            (track_id, genre_id),
        )
        genre_ids.append(genre_id)
    return genre_ids


def rebuild_track_relationships(
    conn: sqlite3.Connection, track_id: int, metadata: TrackMetadata
) -> Optional[int]:
    """Re-link a track to its artists, composers, album artists, genres and album.

    Returns:
        The track's album ID (None when it has no album)
    """
    artwork = metadata.artwork_data or None
    link_track_artists(conn, track_id, metadata.artist, "artist", artwork)
    link_track_artists(conn, track_id, metadata.composer, "composer")
    link_track_artists(conn, track_id, metadata.album_artist, "album_artist")
    resolve_genres(conn, track_id, metadata.genre)

    album_id = resolve_album(conn, metadata, artwork)
    conn.execute("UPDATE tracks SET album_id = ? WHERE id = ?", (album_id, track_id))
    return album_id


def update_entity_statistics(conn: sqlite3.Connection) -> None:
    """Recompute derived track and album counts, ignoring duplicate tracks."""
    conn.execute("""
        UPDATE albums SET total_tracks = (
            SELECT COUNT(*) FROM tracks t
            WHERE t.album_id = albums.id AND t.is_duplicate = 0
        )
    """)
    conn.execute("""
        UPDATE artists SET
            total_tracks = (
                SELECT COUNT(DISTINCT ta.track_id)
                FROM track_artists ta
                JOIN tracks t ON t.id = ta.track_id
                WHERE ta.artist_id = artists.id AND t.is_duplicate = 0
            ),
            total_albums = (
                SELECT COUNT(DISTINCT aa.album_id)
                FROM album_artists aa
                JOIN albums al ON al.id = aa.album_id
                WHERE aa.artist_id = artists.id AND al.total_tracks > 0
            )
    """)


def cleanup_orphaned_entities(conn: sqlite3.Connection) -> dict:
    """Delete albums, artists and genres no track refers to any more.

    Returns:
        Number of deleted rows per entity table
    """
    albums = conn.execute("""
        DELETE FROM albums
        WHERE NOT EXISTS (SELECT 1 FROM tracks t WHERE t.album_id = albums.id)
    """).rowcount
    artists = conn.execute("""
        DELETE FROM artists
        WHERE NOT EXISTS (SELECT 1 FROM track_artists ta WHERE ta.artist_id = artists.id)
          AND NOT EXISTS (SELECT 1 FROM album_artists aa WHERE aa.artist_id = artists.id)
    """).rowcount
    genres = conn.execute("""
        DELETE FROM genres
        WHERE NOT EXISTS (SELECT 1 FROM track_genres tg WHERE tg.genre_id = genres.id)
    """).rowcount

    if albums or artists or genres:
        logger.info(
            f"Removed orphaned entities: {artists} artists, {albums} albums, {genres} genres"
        )
    return {"artists": artists, "albums": albums, "genres": genres}
