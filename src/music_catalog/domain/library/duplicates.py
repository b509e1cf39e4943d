"""Duplicate track detection.

Two tracks are duplicates when they have the same normalized title, the
same normalized primary artist, and durations within
``DuplicatesConfig.duration_tolerance`` seconds of each other. Each group
keeps exactly one canonical track: the highest bitrate copy (when
``prefer_higher_bitrate`` is on), ties broken by the lowest track id. The
canonical track's id is the group id.
"""

import sqlite3
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from music_catalog.core.config import DuplicatesConfig
from music_catalog.core.database import write_transaction

from .entities import update_entity_statistics
from .normalization import normalize_artist_name, normalize_for_matching, parse_artists

# (is_duplicate, primary_track_id, duplicate_group_id)
DuplicateState = Tuple[int, Optional[int], Optional[int]]
NOT_DUPLICATE: DuplicateState = (0, None, None)


def duplicate_key(title: Optional[str], artist: Optional[str]) -> Optional[tuple]:
    """Grouping key for a track, or None when it has no usable title."""
    title_key = normalize_for_matching(title)
    if not title_key:
        return None
    artists = parse_artists(artist)
    artist_key = normalize_artist_name(artists[0]) if artists else ""
    return title_key, artist_key


def _cluster_by_duration(rows: List[sqlite3.Row], tolerance: float) -> List[List[sqlite3.Row]]:
    """Split rows sharing a key into runs whose durations stay within tolerance of the run's first track."""
    ordered = sorted(rows, key=lambda r: (r["duration"] or 0.0, r["id"]))
    clusters: List[List[sqlite3.Row]] = []
    for row in ordered:
        duration = row["duration"] or 0.0
        if clusters and duration - (clusters[-1][0]["duration"] or 0.0) <= tolerance:
            clusters[-1].append(row)
        else:
            clusters.append([row])
    return clusters


def _choose_canonical(cluster: List[sqlite3.Row], prefer_higher_bitrate: bool) -> sqlite3.Row:
    if prefer_higher_bitrate:
        return min(cluster, key=lambda r: (-(r["bitrate"] or 0), r["id"]))
    return min(cluster, key=lambda r: r["id"])


def compute_duplicate_states(
    rows: Iterable[sqlite3.Row], config: DuplicatesConfig
) -> Dict[int, DuplicateState]:
    """Work out the duplicate state of every track.

    Args:
        rows: Rows with id, title, artist, duration and bitrate
        config: Duplicate detection settings

    Returns:
        Track ID -> (is_duplicate, primary_track_id, duplicate_group_id)
    """
    groups: Dict[tuple, List[sqlite3.Row]] = defaultdict(list)
    states: Dict[int, DuplicateState] = {}

    for row in rows:
        states[row["id"]] = NOT_DUPLICATE
        if not config.enabled:
            continue
        key = duplicate_key(row["title"], row["artist"])
        if key is not None:
            groups[key].append(row)

    for members in groups.values():
        if len(members) < 2:
            continue
        for cluster in _cluster_by_duration(members, config.duration_tolerance):
            if len(cluster) < 2:
                continue
            canonical = _choose_canonical(cluster, config.prefer_higher_bitrate)
            group_id = canonical["id"]
            for row in cluster:
                if row["id"] == group_id:
                    states[row["id"]] = (0, None, group_id)
                else:
                    states[row["id"]] = (1, group_id, group_id)

    return states


def detect_duplicates(conn: sqlite3.Connection, config: DuplicatesConfig) -> int:
    """Recompute duplicate flags for the whole catalog.

    Only rows whose state changes are written. Runs inside the caller's
    write transaction and refreshes entity statistics when anything changed.

    Returns:
        Number of tracks whose duplicate state changed
    """
    rows = conn.execute("""
        SELECT id, title, artist, duration, bitrate,
               is_duplicate, primary_track_id, duplicate_group_id
        FROM tracks
    """).fetchall()

    current = {
        row["id"]: (row["is_duplicate"], row["primary_track_id"], row["duplicate_group_id"])
        for row in rows
    }
    states = compute_duplicate_states(rows, config)

    changed = [
        (state[0], state[1], state[2], track_id)
        for track_id, state in states.items()
        if current[track_id] != state
    ]
    if not changed:
        return 0

    conn.executemany(
        """
        UPDATE tracks
        SET is_duplicate = ?, primary_track_id = ?, duplicate_group_id = ?
        WHERE id = ?
        """,
        changed,
    )
    update_entity_statistics(conn)

    flagged = sum(1 for state in states.values() if state[0])
    logger.info(f"Duplicate detection: {len(changed)} tracks changed, {flagged} flagged")
    return len(changed)


def refresh_duplicates(config: Optional[DuplicatesConfig] = None) -> int:
    """Run duplicate detection in its own write transaction.

    Used after settings change; scans call ``detect_duplicates`` directly.
    """
    with write_transaction() as conn:
        return detect_duplicates(conn, config or DuplicatesConfig())
