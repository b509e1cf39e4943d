"""
Schema migrations for the catalog store.

Migrations are named, ordered and forward-only. Each one runs in its own
transaction together with its ledger row in ``schema_migrations``, so a
migration is either fully applied and recorded or not applied at all.
"""

import sqlite3
from typing import Callable, List, Tuple

from loguru import logger

from .exceptions import MigrationError

# Columns mirrored into the full-text index, in index order
SEARCH_INDEX_COLUMNS = (
    "title",
    "artist",
    "album",
    "album_artist",
    "composer",
    "genre",
    "year",
)


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def _add_column(conn: sqlite3.Connection, table: str, column_def: str) -> None:
    """ALTER TABLE ADD COLUMN that tolerates columns which already exist."""
    try:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column_def}")
    except sqlite3.OperationalError as e:
        if "duplicate column name" not in str(e).lower():
            raise


def _v1_initial_schema(conn: sqlite3.Connection) -> None:
    if _table_exists(conn, "tracks"):
        # Store predates the ledger: record it as the v1 baseline untouched
        logger.info("Existing catalog detected, marking as v1 baseline")
        return

    conn.execute("""
        CREATE TABLE IF NOT EXISTS folders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            path TEXT NOT NULL UNIQUE,
            track_count INTEGER NOT NULL DEFAULT 0,
            date_added TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            date_updated TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            bookmark_data BLOB
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS artists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            normalized_name TEXT NOT NULL UNIQUE,
            sort_name TEXT,
            artwork_data BLOB,
            total_tracks INTEGER NOT NULL DEFAULT 0,
            total_albums INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # artist_id is the primary artist the album was keyed on, membership
    # lives in album_artists
    conn.execute("""
        CREATE TABLE IF NOT EXISTS albums (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            normalized_title TEXT NOT NULL,
            sort_title TEXT,
            artist_id INTEGER REFERENCES artists(id) ON DELETE SET NULL,
            artwork_data BLOB,
            release_date TEXT,
            release_year INTEGER,
            total_tracks INTEGER,
            total_discs INTEGER,
            label TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS genres (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS tracks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            folder_id INTEGER NOT NULL REFERENCES folders(id) ON DELETE CASCADE,
            album_id INTEGER REFERENCES albums(id) ON DELETE SET NULL,
            path TEXT NOT NULL UNIQUE,
            filename TEXT NOT NULL,
            title TEXT,
            artist TEXT,
            album TEXT,
            composer TEXT,
            genre TEXT,
            year TEXT,
            duration REAL,
            format TEXT,
            file_size INTEGER,
            date_added TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            date_modified TIMESTAMP,
            artwork_data BLOB,
            is_favorite INTEGER NOT NULL DEFAULT 0,
            play_count INTEGER NOT NULL DEFAULT 0,
            last_played_date TIMESTAMP,
            album_artist TEXT,
            track_number INTEGER,
            total_tracks INTEGER,
            disc_number INTEGER,
            total_discs INTEGER,
            rating INTEGER,
            compilation INTEGER DEFAULT 0,
            release_date TEXT,
            original_release_date TEXT,
            bpm INTEGER,
            media_type TEXT,
            bitrate INTEGER,
            sample_rate INTEGER,
            channels INTEGER,
            codec TEXT,
            bit_depth INTEGER,
            sort_title TEXT,
            sort_artist TEXT,
            sort_album TEXT,
            sort_album_artist TEXT,
            extended_metadata TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS track_artists (
            track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
            artist_id INTEGER NOT NULL REFERENCES artists(id) ON DELETE CASCADE,
            role TEXT NOT NULL DEFAULT 'artist', -- 'artist', 'composer', 'album_artist'
            position INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (track_id, artist_id, role)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS album_artists (
            album_id INTEGER NOT NULL REFERENCES albums(id) ON DELETE CASCADE,
            artist_id INTEGER NOT NULL REFERENCES artists(id) ON DELETE CASCADE,
            role TEXT NOT NULL DEFAULT 'primary', -- 'primary', 'featured'
            position INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (album_id, artist_id, role)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS track_genres (
            track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
            genre_id INTEGER NOT NULL REFERENCES genres(id) ON DELETE CASCADE,
            PRIMARY KEY (track_id, genre_id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS playlists (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            type TEXT NOT NULL, -- 'regular' or 'smart'
            smart_type TEXT, -- 'favorites', 'mostPlayed', 'recentlyPlayed' or 'custom'
            is_user_editable INTEGER NOT NULL DEFAULT 1,
            is_content_editable INTEGER NOT NULL DEFAULT 1,
            date_created TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            date_modified TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            cover_artwork_data BLOB,
            smart_criteria TEXT, -- JSON, smart playlists only
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS playlist_tracks (
            playlist_id TEXT NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
            track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            date_added TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (playlist_id, track_id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS pinned_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_type TEXT NOT NULL, -- 'library' or 'playlist'
            filter_type TEXT,
            filter_value TEXT,
            entity_id TEXT,
            artist_id INTEGER,
            album_id INTEGER,
            playlist_id TEXT REFERENCES playlists(id) ON DELETE CASCADE,
            display_name TEXT NOT NULL,
            subtitle TEXT,
            icon_name TEXT NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            date_added TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Album identity: one row per (normalized title, keying artist)
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_albums_identity
        ON albums (normalized_title, IFNULL(artist_id, 0))
    """)

    for statement in (
        "CREATE INDEX IF NOT EXISTS idx_tracks_folder_id ON tracks (folder_id)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_album_id ON tracks (album_id)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks (artist)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_album ON tracks (album)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_composer ON tracks (composer)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_genre ON tracks (genre)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_year ON tracks (year)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_album_artist ON tracks (album_artist)",
        "CREATE INDEX IF NOT EXISTS idx_tracks_rating ON tracks (rating)",
        "CREATE INDEX IF NOT EXISTS idx_track_artists_artist_id ON track_artists (artist_id)",
        "CREATE INDEX IF NOT EXISTS idx_album_artists_artist_id ON album_artists (artist_id)",
        "CREATE INDEX IF NOT EXISTS idx_track_genres_genre_id ON track_genres (genre_id)",
        "CREATE INDEX IF NOT EXISTS idx_playlist_tracks_position ON playlist_tracks (playlist_id, position)",
        "CREATE INDEX IF NOT EXISTS idx_pinned_items_sort_order ON pinned_items (sort_order)",
    ):
        conn.execute(statement)


def _v2_add_folder_content_hash(conn: sqlite3.Connection) -> None:
    _add_column(conn, "folders", "shasum_hash TEXT")


def _v3_add_duplicate_tracking(conn: sqlite3.Connection) -> None:
    _add_column(conn, "tracks", "is_duplicate INTEGER NOT NULL DEFAULT 0")
    _add_column(conn, "tracks", "primary_track_id INTEGER")
    _add_column(conn, "tracks", "duplicate_group_id INTEGER")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_tracks_is_duplicate ON tracks (is_duplicate)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_tracks_duplicate_group ON tracks (duplicate_group_id)"
    )


def _v4_add_search_index(conn: sqlite3.Connection) -> None:
    columns = ", ".join(SEARCH_INDEX_COLUMNS)
    new_values = ", ".join(f"new.{c}" for c in SEARCH_INDEX_COLUMNS)

    try:
        # rowid of an index entry is the track id
        conn.execute(f"""
            CREATE VIRTUAL TABLE IF NOT EXISTS tracks_fts
            USING fts5({columns}, tokenize = 'porter unicode61 remove_diacritics 2')
        """)
    except sqlite3.OperationalError as e:
        if "no such module" not in str(e).lower():
            raise
        logger.warning("SQLite built without FTS5, search falls back to LIKE queries")
        return

    conn.execute(f"""
        CREATE TRIGGER IF NOT EXISTS tracks_fts_insert AFTER INSERT ON tracks
        BEGIN
            INSERT INTO tracks_fts (rowid, {columns}) VALUES (new.id, {new_values});
        END
    """)
    conn.execute(f"""
        CREATE TRIGGER IF NOT EXISTS tracks_fts_update
        AFTER UPDATE OF {columns} ON tracks
        BEGIN
            DELETE FROM tracks_fts WHERE rowid = old.id;
            INSERT INTO tracks_fts (rowid, {columns}) VALUES (new.id, {new_values});
        END
    """)
    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS tracks_fts_delete AFTER DELETE ON tracks
        BEGIN
            DELETE FROM tracks_fts WHERE rowid = old.id;
        END
    """)

    populate_search_index(conn)


def search_index_available(conn: sqlite3.Connection) -> bool:
    """Check if the full-text index exists in this store."""
    return _table_exists(conn, "tracks_fts")


def populate_search_index(conn: sqlite3.Connection, force: bool = False) -> int:
    """Fill the full-text index from the tracks table.

    A no-op when the index already holds entries, unless ``force`` is set,
    in which case the index is cleared and rebuilt. Caller owns the
    transaction.

    Returns:
        Number of entries written
    """
    if not search_index_available(conn):
        return 0

    existing = conn.execute("SELECT COUNT(*) FROM tracks_fts").fetchone()[0]
    if existing and not force:
        return 0

    columns = ", ".join(SEARCH_INDEX_COLUMNS)
    conn.execute("DELETE FROM tracks_fts")
    cursor = conn.execute(
        f"INSERT INTO tracks_fts (rowid, {columns}) SELECT id, {columns} FROM tracks"
    )
    return cursor.rowcount


MIGRATIONS: List[Tuple[str, Callable[[sqlite3.Connection], None]]] = [
    ("v1_initial_schema", _v1_initial_schema),
    ("v2_add_folder_content_hash", _v2_add_folder_content_hash),
    ("v3_add_duplicate_tracking", _v3_add_duplicate_tracking),
    ("v4_add_search_index", _v4_add_search_index),
]


def _ensure_ledger(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            identifier TEXT PRIMARY KEY,
            applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.commit()


def applied_migrations(conn: sqlite3.Connection) -> List[str]:
    """Get identifiers of migrations recorded in the ledger, in apply order."""
    _ensure_ledger(conn)
    cursor = conn.execute(
        "SELECT identifier FROM schema_migrations ORDER BY applied_at, rowid"
    )
    return [row[0] for row in cursor.fetchall()]


def apply_migrations(conn: sqlite3.Connection) -> List[str]:
    """Apply every migration not yet in the ledger, in order.

    Args:
        conn: Open connection; must not be inside a transaction

    Returns:
        Identifiers applied by this call (empty when already up to date)

    Raises:
        MigrationError: On the first failing migration. Earlier migrations
            stay applied; the failing one is rolled back.
    """
    done = set(applied_migrations(conn))
    newly_applied = []

    for identifier, migration in MIGRATIONS:
        if identifier in done:
            continue

        conn.execute("BEGIN IMMEDIATE")
        try:
            migration(conn)
            conn.execute(
                "INSERT INTO schema_migrations (identifier) VALUES (?)",
                (identifier,),
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.exception(f"Migration {identifier} failed")
            raise MigrationError(identifier, f"Migration '{identifier}' failed: {e}") from e

        logger.info(f"Applied migration {identifier}")
        newly_applied.append(identifier)

    return newly_applied
