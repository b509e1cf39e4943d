"""
Full-text track search.

The ``tracks_fts`` index is kept in sync with ``tracks`` by triggers
created in the ``v4_add_search_index`` migration, so inserts, updates and
deletes never need to touch it here. This module only queries it and can
rebuild it from scratch.
"""

import re
import sqlite3
from typing import Iterable, List, Optional

from loguru import logger

from music_catalog.core.database import get_db_connection, placeholders, write_transaction
from music_catalog.core.migrations import populate_search_index, search_index_available
from music_catalog.core.preferences import Preferences

from .models import Track
from .queries import apply_duplicate_filter

DEFAULT_SEARCH_LIMIT = 500
PLAYLIST_SEARCH_LIMIT = 200

_HAS_WORD_CHARACTER = re.compile(r"\w")


def build_match_query(text: str) -> Optional[str]:
    """Turn free text into an FTS5 query that requires every token.

    Each whitespace-separated token becomes a quoted prefix term, so FTS5
    operators typed by the user are matched literally.

    Examples:
        >>> build_match_query('abbey road')
        '"abbey"* AND "road"*'
    """
    terms = []
    for token in text.split():
        if not _HAS_WORD_CHARACTER.search(token):
            continue
        escaped = token.replace('"', '""')
        terms.append(f'"{escaped}"*')
    if not terms:
        return None
    return " AND ".join(terms)


def rebuild_search_index(force: bool = False) -> int:
    """Repopulate the search index from the tracks table.

    A no-op when the index already has entries, unless forced.

    Returns:
        Number of entries written
    """
    with write_transaction() as conn:
        count = populate_search_index(conn, force=force)
    if count:
        logger.info(f"Search index rebuilt with {count} tracks")
    return count


def _fts_search(
    conn: sqlite3.Connection,
    match_query: str,
    preferences: Optional[Preferences],
    limit: int,
    exclude_ids: Iterable[int] = (),
) -> List[Track]:
    sql = """
        SELECT t.*
        FROM tracks t
        JOIN tracks_fts ON tracks_fts.rowid = t.id
        WHERE tracks_fts MATCH ?
    """
    params: list = [match_query]

    excluded = list(exclude_ids)
    if excluded:
        sql += f" AND t.id NOT IN ({placeholders(len(excluded))})"
        params.extend(excluded)

    sql, params = apply_duplicate_filter(sql, params, preferences, alias="t")
    sql += " ORDER BY tracks_fts.rank LIMIT ?"
    params.append(limit)

    cursor = conn.execute(sql, params)
    return [Track.from_row(row) for row in cursor.fetchall()]


def search_tracks_like(
    text: str,
    preferences: Optional[Preferences] = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> List[Track]:
    """Fallback search with LIKE, used when the store has no FTS5 index
    or the text has no word characters to index.

    Every token must appear in at least one searchable column.
    """
    tokens = text.split()
    if not tokens:
        return []

    columns = ("title", "artist", "album", "album_artist", "composer", "genre", "year")
    clauses = []
    params: list = []
    for token in tokens:
        escaped = token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        clauses.append(
            "(" + " OR ".join(f"{c} LIKE ? ESCAPE '\\'" for c in columns) + ")"
        )
        params.extend([f"%{escaped}%"] * len(columns))

    sql = "SELECT * FROM tracks WHERE " + " AND ".join(clauses)
    sql, params = apply_duplicate_filter(sql, params, preferences)
    sql += " ORDER BY title COLLATE NOCASE LIMIT ?"
    params.append(limit)

    try:
        with get_db_connection() as conn:
            return [Track.from_row(row) for row in conn.execute(sql, params).fetchall()]
    except sqlite3.Error as e:
        logger.warning(f"LIKE search failed for {text!r}: {e}")
        return []


def search_tracks(
    text: str,
    preferences: Optional[Preferences] = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
    exclude_ids: Iterable[int] = (),
) -> List[Track]:
    """Search tracks whose indexed fields contain every token of ``text``.

    Matching is case-insensitive, prefix-based and stem-aware; results are
    ranked by relevance. Text made only of punctuation is matched
    literally instead. Query errors are logged and give an empty list.

    Args:
        text: Free text typed by the user
        preferences: Read preferences (hide duplicates)
        limit: Maximum number of results
        exclude_ids: Track IDs to leave out

    Returns:
        Matching tracks, best match first
    """
    if not text or not text.strip():
        return []
    # Punctuation-only text has no FTS tokens; LIKE still matches it
    match_query = build_match_query(text)
    excluded = list(exclude_ids)

    try:
        with get_db_connection() as conn:
            if match_query is not None and search_index_available(conn):
                return _fts_search(conn, match_query, preferences, limit, excluded)
    except sqlite3.Error as e:
        logger.warning(f"Search failed for {text!r}: {e}")
        return []

    results = search_tracks_like(text, preferences, limit + len(excluded))
    return [t for t in results if t.id not in set(excluded)][:limit]


def search_tracks_for_playlist(
    text: str,
    exclude_ids: Iterable[int] = (),
    preferences: Optional[Preferences] = None,
    limit: int = PLAYLIST_SEARCH_LIMIT,
) -> List[Track]:
    """Search for tracks to add to a playlist, skipping ones already in it."""
    return search_tracks(text, preferences, limit=limit, exclude_ids=exclude_ids)
