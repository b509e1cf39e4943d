"""
Playlist persistence for Music Catalog.

Regular playlists store an ordered list of track references. Saving a
playlist replaces its whole membership (delete, then reinsert with
positions) in one transaction. Smart playlists store only their criteria;
see ``smart`` for evaluation.
"""

import sqlite3
import uuid
from typing import List, Optional, Sequence

from loguru import logger

from music_catalog.core.database import get_db_connection, write_transaction
from music_catalog.core.events import PLAYLISTS_CHANGED, LibraryEvents
from music_catalog.core.exceptions import PlaylistNotEditableError
from music_catalog.core.preferences import Preferences
from music_catalog.domain.library.models import Track
from music_catalog.domain.library.queries import apply_duplicate_filter
from music_catalog.domain.library.tracks import set_track_favorite
from music_catalog.domain.pinned.store import delete_pinned_items_for_playlist

from . import smart
from .models import Playlist, SmartPlaylistCriteria


def _notify(events: Optional[LibraryEvents], playlist_id: str, action: str) -> None:
    if events:
        events.emit(PLAYLISTS_CHANGED, playlist_id=playlist_id, action=action)


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise ValueError("Playlist name cannot be empty")
    return name.strip()


def _write_membership(conn: sqlite3.Connection, playlist_id: str, track_ids: Sequence[int]) -> int:
    """Replace a playlist's tracks. Repeated IDs keep their first position."""
    conn.execute("DELETE FROM playlist_tracks WHERE playlist_id = ?", (playlist_id,))
    unique_ids = list(dict.fromkeys(track_ids))
    conn.executemany(
        "INSERT INTO playlist_tracks (playlist_id, track_id, position) VALUES (?, ?, ?)",
        [(playlist_id, track_id, position) for position, track_id in enumerate(unique_ids)],
    )
    return len(unique_ids)


def _require_playlist(conn: sqlite3.Connection, playlist_id: str) -> Playlist:
    row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
    if not row:
        raise ValueError(f"Playlist {playlist_id} not found")
    return Playlist.from_row(row)


def create_playlist(
    name: str,
    track_ids: Sequence[int] = (),
    events: Optional[LibraryEvents] = None,
) -> Playlist:
    """Create a regular playlist.

    Args:
        name: Playlist name
        track_ids: Initial tracks, in order
        events: Channel notified after the change is committed

    Returns:
        The created playlist

    Raises:
        ValueError: If the name is empty
    """
    name = _validate_name(name)
    playlist_id = str(uuid.uuid4())

    with write_transaction() as conn:
        conn.execute(
            "INSERT INTO playlists (id, name, type) VALUES (?, ?, 'regular')",
            (playlist_id, name),
        )
        count = _write_membership(conn, playlist_id, track_ids)
        playlist = _require_playlist(conn, playlist_id)

    logger.info(f"Created playlist '{name}' with {count} tracks")
    _notify(events, playlist_id, "created")
    return playlist


def create_smart_playlist(
    name: str,
    criteria: SmartPlaylistCriteria,
    smart_type: str = "custom",
    is_user_editable: bool = True,
    events: Optional[LibraryEvents] = None,
) -> Playlist:
    """Create a smart playlist.

    Raises:
        ValueError: If the name or criteria are invalid
    """
    name = _validate_name(name)
    smart.validate_criteria(criteria)
    playlist_id = str(uuid.uuid4())

    with write_transaction() as conn:
        conn.execute(
            """
            INSERT INTO playlists (
                id, name, type, smart_type, is_user_editable, is_content_editable, smart_criteria
            )
            VALUES (?, ?, 'smart', ?, ?, 0, ?)
            """,
            (playlist_id, name, smart_type, int(is_user_editable), criteria.to_json()),
        )
        playlist = _require_playlist(conn, playlist_id)

    _notify(events, playlist_id, "created")
    return playlist


def save_playlist(
    playlist: Playlist,
    track_ids: Sequence[int] = (),
    events: Optional[LibraryEvents] = None,
) -> None:
    """Insert or update a playlist and replace its membership.

    The playlist row, the removal of the old membership and the insertion
    of the new one are one transaction.

    Raises:
        ValueError: If the playlist is invalid
        PlaylistNotEditableError: If tracks are given for a smart playlist
    """
    name = _validate_name(playlist.name)
    criteria_json = None
    if playlist.is_smart:
        if track_ids:
            raise PlaylistNotEditableError(
                f"Smart playlist '{name}' computes its tracks and cannot store them"
            )
        if playlist.smart_criteria is not None:
            smart.validate_criteria(playlist.smart_criteria)
            criteria_json = playlist.smart_criteria.to_json()
    elif playlist.type != "regular":
        raise ValueError(f"Invalid playlist type: {playlist.type}. Must be 'regular' or 'smart'")

    with write_transaction() as conn:
        conn.execute(
            """
            INSERT INTO playlists (
                id, name, type, smart_type, is_user_editable, is_content_editable,
                cover_artwork_data, smart_criteria, sort_order
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                smart_type = excluded.smart_type,
                is_user_editable = excluded.is_user_editable,
                is_content_editable = excluded.is_content_editable,
                cover_artwork_data = excluded.cover_artwork_data,
                smart_criteria = excluded.smart_criteria,
                sort_order = excluded.sort_order,
                date_modified = CURRENT_TIMESTAMP
            """,
            (
                playlist.id,
                name,
                playlist.type,
                playlist.smart_type,
                int(playlist.is_user_editable),
                int(playlist.is_content_editable),
                playlist.cover_artwork_data,
                criteria_json,
                playlist.sort_order,
            ),
        )
        count = _write_membership(conn, playlist.id, track_ids)

    logger.info(f"Saved playlist '{name}' with {count} tracks")
    _notify(events, playlist.id, "saved")


def get_playlist(playlist_id: str) -> Optional[Playlist]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
        return Playlist.from_row(row) if row else None


def get_playlist_by_name(name: str) -> Optional[Playlist]:
    """Get the first playlist with this name (case-insensitive)."""
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT * FROM playlists WHERE name = ? COLLATE NOCASE ORDER BY date_created LIMIT 1",
            (name,),
        ).fetchone()
        return Playlist.from_row(row) if row else None


def get_all_playlists() -> List[Playlist]:
    """All playlists: built-in smart playlists first, then the rest by name."""
    with get_db_connection() as conn:
        cursor = conn.execute("""
            SELECT * FROM playlists
            ORDER BY
                CASE smart_type
                    WHEN 'favorites' THEN 0
                    WHEN 'mostPlayed' THEN 1
                    WHEN 'recentlyPlayed' THEN 2
                    ELSE 3
                END,
                type DESC,
                name COLLATE NOCASE
        """)
        return [Playlist.from_row(row) for row in cursor.fetchall()]


def get_playlist_track_ids(playlist_id: str) -> List[int]:
    with get_db_connection() as conn:
        cursor = conn.execute(
            "SELECT track_id FROM playlist_tracks WHERE playlist_id = ? ORDER BY position",
            (playlist_id,),
        )
        return [row["track_id"] for row in cursor.fetchall()]


def get_playlist_tracks(
    playlist_id: str, preferences: Optional[Preferences] = None
) -> List[Track]:
    """Get a playlist's tracks in order.

    Smart playlists are evaluated on every call.
    """
    playlist = get_playlist(playlist_id)
    if playlist is None:
        return []
    if playlist.is_smart:
        return smart.evaluate_smart_playlist(playlist, preferences)

    sql, params = apply_duplicate_filter(
        """
        SELECT t.*
        FROM playlist_tracks pt
        JOIN tracks t ON t.id = pt.track_id
        WHERE pt.playlist_id = ?
        """,
        [playlist_id],
        preferences,
        alias="t",
    )
    try:
        with get_db_connection() as conn:
            cursor = conn.execute(sql + " ORDER BY pt.position", params)
            return [Track.from_row(row) for row in cursor.fetchall()]
    except sqlite3.Error as e:
        logger.warning(f"Loading tracks for playlist {playlist_id} failed: {e}")
        return []


def _favorite_toggle(playlist: Playlist, action: str) -> bool:
    """Whether a membership edit on this playlist maps onto the favorite flag.

    Raises:
        PlaylistNotEditableError: For any other smart playlist
    """
    if not playlist.is_smart:
        return False
    if smart.is_favorites_playlist(playlist):
        return True
    raise PlaylistNotEditableError(
        f"Cannot {action} tracks in smart playlist '{playlist.name}'"
    )


def add_track_to_playlist(
    playlist_id: str, track_id: int, events: Optional[LibraryEvents] = None
) -> bool:
    """Append a track to a playlist.

    Adding to the favorites playlist marks the track as favorite.

    Returns:
        True if the track was added, False if it was already there

    Raises:
        ValueError: If the playlist does not exist
        PlaylistNotEditableError: If the playlist is a smart playlist
    """
    playlist = get_playlist(playlist_id)
    if playlist is None:
        raise ValueError(f"Playlist {playlist_id} not found")
    if _favorite_toggle(playlist, "add"):
        return set_track_favorite(track_id, True, events)

    with write_transaction() as conn:
        exists = conn.execute(
            "SELECT 1 FROM playlist_tracks WHERE playlist_id = ? AND track_id = ?",
            (playlist_id, track_id),
        ).fetchone()
        if exists:
            return False

        max_position = conn.execute(
            "SELECT MAX(position) AS max_pos FROM playlist_tracks WHERE playlist_id = ?",
            (playlist_id,),
        ).fetchone()["max_pos"]
        next_position = (max_position if max_position is not None else -1) + 1

        conn.execute(
            "INSERT INTO playlist_tracks (playlist_id, track_id, position) VALUES (?, ?, ?)",
            (playlist_id, track_id, next_position),
        )
        conn.execute(
            "UPDATE playlists SET date_modified = CURRENT_TIMESTAMP WHERE id = ?",
            (playlist_id,),
        )

    _notify(events, playlist_id, "tracks_added")
    return True


def _compact_positions(conn: sqlite3.Connection, playlist_id: str) -> None:
    rows = conn.execute(
        "SELECT track_id, position FROM playlist_tracks WHERE playlist_id = ? ORDER BY position",
        (playlist_id,),
    ).fetchall()
    updates = [
        (index, playlist_id, row["track_id"])
        for index, row in enumerate(rows)
        if row["position"] != index
    ]
    conn.executemany(
        "UPDATE playlist_tracks SET position = ? WHERE playlist_id = ? AND track_id = ?",
        updates,
    )


def remove_track_from_playlist(
    playlist_id: str, track_id: int, events: Optional[LibraryEvents] = None
) -> bool:
    """Remove a track and close the gap in positions.

    Removing from the favorites playlist clears the favorite flag.

    Returns:
        True if the track was removed, False if it was not in the playlist

    Raises:
        ValueError: If the playlist does not exist
        PlaylistNotEditableError: If the playlist is a smart playlist
    """
    playlist = get_playlist(playlist_id)
    if playlist is None:
        raise ValueError(f"Playlist {playlist_id} not found")
    if _favorite_toggle(playlist, "remove"):
        return set_track_favorite(track_id, False, events)

    with write_transaction() as conn:
        cursor = conn.execute(
            "DELETE FROM playlist_tracks WHERE playlist_id = ? AND track_id = ?",
            (playlist_id, track_id),
        )
        if cursor.rowcount == 0:
            return False
        _compact_positions(conn, playlist_id)
        conn.execute(
            "UPDATE playlists SET date_modified = CURRENT_TIMESTAMP WHERE id = ?",
            (playlist_id,),
        )

    _notify(events, playlist_id, "tracks_removed")
    return True


def move_track_in_playlist(
    playlist_id: str,
    from_index: int,
    to_index: int,
    events: Optional[LibraryEvents] = None,
) -> bool:
    """Move the track at ``from_index`` to ``to_index``.

    Returns:
        True if the order changed

    Raises:
        ValueError: If the playlist does not exist
        PlaylistNotEditableError: If the playlist is a smart playlist
    """
    playlist = get_playlist(playlist_id)
    if playlist is None:
        raise ValueError(f"Playlist {playlist_id} not found")
    if playlist.is_smart:
        raise PlaylistNotEditableError(f"Cannot reorder smart playlist '{playlist.name}'")

    with write_transaction() as conn:
        track_ids = [
            row["track_id"]
            for row in conn.execute(
                "SELECT track_id FROM playlist_tracks WHERE playlist_id = ? ORDER BY position",
                (playlist_id,),
            ).fetchall()
        ]
        if from_index == to_index or not (
            0 <= from_index < len(track_ids) and 0 <= to_index < len(track_ids)
        ):
            return False
        track_ids.insert(to_index, track_ids.pop(from_index))
        conn.executemany(
            "UPDATE playlist_tracks SET position = ? WHERE playlist_id = ? AND track_id = ?",
            [(position, playlist_id, tid) for position, tid in enumerate(track_ids)],
        )

    _notify(events, playlist_id, "reordered")
    return True


def rename_playlist(
    playlist_id: str, new_name: str, events: Optional[LibraryEvents] = None
) -> None:
    """Rename a playlist.

    Raises:
        ValueError: If the name is empty or the playlist does not exist
        PlaylistNotEditableError: If the playlist is built in
    """
    new_name = _validate_name(new_name)
    with write_transaction() as conn:
        playlist = _require_playlist(conn, playlist_id)
        if not playlist.is_user_editable:
            raise PlaylistNotEditableError(f"Playlist '{playlist.name}' cannot be renamed")
        conn.execute(
            "UPDATE playlists SET name = ?, date_modified = CURRENT_TIMESTAMP WHERE id = ?",
            (new_name, playlist_id),
        )
    # Pinned items keep the display name they were pinned with
    _notify(events, playlist_id, "renamed")


def delete_playlist(playlist_id: str, events: Optional[LibraryEvents] = None) -> bool:
    """Delete a playlist, its membership and any pinned items for it.

    Returns:
        True if the playlist existed

    Raises:
        PlaylistNotEditableError: If the playlist is built in
    """
    with write_transaction() as conn:
        row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
        if not row:
            return False
        playlist = Playlist.from_row(row)
        if not playlist.is_user_editable:
            raise PlaylistNotEditableError(f"Playlist '{playlist.name}' cannot be deleted")
        delete_pinned_items_for_playlist(conn, playlist_id)
        conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))

    logger.info(f"Deleted playlist '{playlist.name}'")
    _notify(events, playlist_id, "deleted")
    return True


def seed_default_playlists() -> List[Playlist]:
    """Create the built-in smart playlists when there are no playlists at all.

    Returns:
        The playlists created (empty when the table already had rows)
    """
    created = []
    with write_transaction() as conn:
        count = conn.execute("SELECT COUNT(*) AS count FROM playlists").fetchone()["count"]
        if count:
            return []
        for sort_order, (name, smart_type, criteria) in enumerate(smart.DEFAULT_SMART_PLAYLISTS):
            playlist_id = str(uuid.uuid4())
            conn.execute(
                """
                INSERT INTO playlists (
                    id, name, type, smart_type, is_user_editable, is_content_editable,
                    smart_criteria, sort_order
                )
                VALUES (?, ?, 'smart', ?, 0, 0, ?, ?)
                """,
                (playlist_id, name, smart_type, criteria.to_json(), sort_order),
            )
            created.append(_require_playlist(conn, playlist_id))

    logger.info(f"Created {len(created)} default smart playlists")
    return created
