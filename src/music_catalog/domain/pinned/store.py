"""
Pinned items: library filters, artists, albums and playlists pinned to the
home view, in user order.

sort_order is always the dense sequence 0..N-1: new items go last, and
every removal compacts the remaining items.
"""

import sqlite3
from dataclasses import dataclass, fields
from typing import List, Optional, Sequence

from loguru import logger

from music_catalog.core.database import get_db_connection, write_transaction
from music_catalog.core.preferences import Preferences
from music_catalog.domain.library.models import Album, Artist, Track
from music_catalog.domain.library.queries import (
    get_filter_dimension,
    get_tracks_by_filter_value,
    get_tracks_for_album_id,
    get_tracks_for_artist_id,
)

ITEM_TYPES = ("library", "playlist")

ARTIST_ICON = "person.fill"
ALBUM_ICON = "opticaldisc.fill"
PLAYLIST_ICON = "music.note.list"
SMART_PLAYLIST_ICONS = {
    "favorites": "star.fill",
    "mostPlayed": "play.circle.fill",
    "recentlyPlayed": "clock.fill",
}


@dataclass(frozen=True)
class PinnedItem:
    id: int
    item_type: str
    display_name: str
    icon_name: str
    sort_order: int = 0
    filter_type: Optional[str] = None
    filter_value: Optional[str] = None
    entity_id: Optional[str] = None
    artist_id: Optional[int] = None
    album_id: Optional[int] = None
    playlist_id: Optional[str] = None
    subtitle: Optional[str] = None
    date_added: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PinnedItem":
        keys = set(row.keys())
        return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in keys})


def compact_sort_order(conn: sqlite3.Connection) -> None:
    """Renumber sort_order to 0..N-1, keeping the current order."""
    rows = conn.execute(
        "SELECT id, sort_order FROM pinned_items ORDER BY sort_order, id"
    ).fetchall()
    updates = [
        (index, row["id"]) for index, row in enumerate(rows) if row["sort_order"] != index
    ]
    if updates:
        conn.executemany("UPDATE pinned_items SET sort_order = ? WHERE id = ?", updates)


def _find_existing(
    conn: sqlite3.Connection,
    filter_type: Optional[str],
    filter_value: Optional[str],
    playlist_id: Optional[str],
) -> Optional[int]:
    if playlist_id is not None:
        row = conn.execute(
            "SELECT id FROM pinned_items WHERE item_type = 'playlist' AND playlist_id = ?",
            (playlist_id,),
        ).fetchone()
    else:
        row = conn.execute(
            """
            SELECT id FROM pinned_items
            WHERE item_type = 'library' AND filter_type = ? AND filter_value = ?
            """,
            (filter_type, filter_value),
        ).fetchone()
    return row["id"] if row else None


def _pin(
    item_type: str,
    display_name: str,
    icon_name: str,
    filter_type: Optional[str] = None,
    filter_value: Optional[str] = None,
    entity_id: Optional[str] = None,
    artist_id: Optional[int] = None,
    album_id: Optional[int] = None,
    playlist_id: Optional[str] = None,
    subtitle: Optional[str] = None,
) -> int:
    """Insert a pinned item unless an equivalent one exists.

    Returns:
        ID of the new or existing pinned item
    """
    with write_transaction() as conn:
        existing = _find_existing(conn, filter_type, filter_value, playlist_id)
        if existing is not None:
            logger.debug(f"Item already pinned: {display_name}")
            return existing

        count = conn.execute("SELECT COUNT(*) AS count FROM pinned_items").fetchone()["count"]
        cursor = conn.execute(
            """
            INSERT INTO pinned_items (
                item_type, filter_type, filter_value, entity_id, artist_id,
                album_id, playlist_id, display_name, subtitle, icon_name, sort_order
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item_type, filter_type, filter_value, entity_id, artist_id,
                album_id, playlist_id, display_name, subtitle, icon_name, count,
            ),
        )
        logger.info(f"Pinned {item_type} item '{display_name}'")
        return cursor.lastrowid


def pin_library_filter(
    filter_type: str,
    filter_value: str,
    display_name: Optional[str] = None,
    subtitle: Optional[str] = None,
    icon_name: str = "music.note",
) -> int:
    """Pin a library filter value such as a genre or a decade.

    Raises:
        ValueError: If the filter type is unknown
    """
    get_filter_dimension(filter_type)
    return _pin(
        "library",
        display_name or filter_value,
        icon_name,
        filter_type=filter_type,
        filter_value=filter_value,
        subtitle=subtitle,
    )


def pin_entity(entity: "Artist | Album") -> int:
    """Pin an artist or album entity.

    Entities are stored as library items so they dedupe with a pinned
    filter on the same name.
    """
    if isinstance(entity, Artist):
        return _pin(
            "library",
            entity.name,
            ARTIST_ICON,
            filter_type="artists",
            filter_value=entity.name,
            entity_id=f"artist:{entity.id}",
            artist_id=entity.id,
            subtitle=f"{entity.total_tracks} songs",
        )
    if isinstance(entity, Album):
        return _pin(
            "library",
            entity.title,
            ALBUM_ICON,
            filter_type="albums",
            filter_value=entity.title,
            entity_id=f"album:{entity.id}",
            album_id=entity.id,
            subtitle=entity.artist_name,
        )
    raise ValueError(f"Cannot pin entity of type {type(entity).__name__}")


def pin_playlist(playlist) -> int:
    """Pin a playlist (regular or smart)."""
    icon = SMART_PLAYLIST_ICONS.get(playlist.smart_type, PLAYLIST_ICON)
    return _pin("playlist", playlist.name, icon, playlist_id=playlist.id)


def unpin_item(item_id: int) -> bool:
    """Remove a pinned item by ID.

    Returns:
        True if the item existed
    """
    with write_transaction() as conn:
        cursor = conn.execute("DELETE FROM pinned_items WHERE id = ?", (item_id,))
        removed = cursor.rowcount > 0
        if removed:
            compact_sort_order(conn)
    return removed


def remove_pinned_items_matching(
    filter_type: Optional[str] = None,
    filter_value: Optional[str] = None,
    playlist_id: Optional[str] = None,
) -> int:
    """Remove pinned items matching every given criterion.

    Returns:
        Number of removed items
    """
    conditions = []
    params: list = []
    if filter_type is not None:
        conditions.append("filter_type = ?")
        params.append(filter_type)
    if filter_value is not None:
        conditions.append("filter_value = ?")
        params.append(filter_value)
    if playlist_id is not None:
        conditions.append("playlist_id = ?")
        params.append(playlist_id)
    if not conditions:
        raise ValueError("At least one criterion is required to remove pinned items")

    with write_transaction() as conn:
        cursor = conn.execute(
            f"DELETE FROM pinned_items WHERE {' AND '.join(conditions)}", params
        )
        removed = cursor.rowcount
        if removed:
            compact_sort_order(conn)
    return removed


def delete_pinned_items_for_playlist(conn: sqlite3.Connection, playlist_id: str) -> int:
    """Remove a playlist's pinned items inside the caller's write transaction."""
    removed = conn.execute(
        "DELETE FROM pinned_items WHERE playlist_id = ?", (playlist_id,)
    ).rowcount
    if removed:
        compact_sort_order(conn)
    return removed


def remove_pinned_items_for_playlist(playlist_id: str) -> int:
    with write_transaction() as conn:
        return delete_pinned_items_for_playlist(conn, playlist_id)


def reorder_pinned_items(item_ids: Sequence[int]) -> None:
    """Store a new order. Items not listed keep their relative order after the listed ones.

    Raises:
        ValueError: If an ID is listed twice
    """
    if len(set(item_ids)) != len(item_ids):
        raise ValueError("Pinned item IDs must be unique")

    with write_transaction() as conn:
        rows = conn.execute("SELECT id FROM pinned_items ORDER BY sort_order, id").fetchall()
        known = [row["id"] for row in rows]
        known_ids = set(known)
        listed = [item_id for item_id in item_ids if item_id in known_ids]
        listed_ids = set(listed)
        rest = [item_id for item_id in known if item_id not in listed_ids]
        conn.executemany(
            "UPDATE pinned_items SET sort_order = ? WHERE id = ?",
            [(index, item_id) for index, item_id in enumerate(listed + rest)],
        )


def get_pinned_items() -> List[PinnedItem]:
    with get_db_connection() as conn:
        cursor = conn.execute("SELECT * FROM pinned_items ORDER BY sort_order, id")
        return [PinnedItem.from_row(row) for row in cursor.fetchall()]


def is_item_pinned(
    filter_type: Optional[str] = None,
    filter_value: Optional[str] = None,
    entity_id: Optional[str] = None,
    playlist_id: Optional[str] = None,
) -> bool:
    """Check for a pinned playlist, filter value or entity, in that order of precedence."""
    if playlist_id is not None:
        sql, params = "SELECT 1 FROM pinned_items WHERE playlist_id = ?", [playlist_id]
    elif filter_type is not None and filter_value is not None:
        sql = "SELECT 1 FROM pinned_items WHERE filter_type = ? AND filter_value = ?"
        params = [filter_type, filter_value]
    elif entity_id is not None:
        sql, params = "SELECT 1 FROM pinned_items WHERE entity_id = ?", [entity_id]
    else:
        return False

    with get_db_connection() as conn:
        return conn.execute(sql + " LIMIT 1", params).fetchone() is not None


def get_tracks_for_pinned_item(
    item: PinnedItem, preferences: Optional[Preferences] = None
) -> List[Track]:
    """Resolve a pinned item to its tracks."""
    if item.item_type == "playlist":
        if not item.playlist_id:
            return []
        from music_catalog.domain.playlists.crud import get_playlist_tracks

        return get_playlist_tracks(item.playlist_id, preferences)

    if item.artist_id is not None:
        return get_tracks_for_artist_id(item.artist_id, preferences)
    if item.album_id is not None:
        return get_tracks_for_album_id(item.album_id, preferences)
    if item.filter_type and item.filter_value is not None:
        return get_tracks_by_filter_value(item.filter_type, item.filter_value, preferences)
    return []
