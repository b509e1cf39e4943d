"""User-owned track state: favorites, play history and ratings.

Scans never write favorites or play history, and a rating read from tags
only fills an unset rating, so a rescan keeps all of it.
"""

from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from music_catalog.core.database import write_transaction
from music_catalog.core.events import TRACKS_CHANGED, LibraryEvents

# Same format as SQLite's CURRENT_TIMESTAMP, so comparisons with
# datetime('now', ...) stay lexicographic
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a UTC timestamp string."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def set_track_favorite(
    track_id: int, favorite: bool, events: Optional[LibraryEvents] = None
) -> bool:
    """Mark or unmark a track as favorite.

    Returns:
        True if the track exists
    """
    with write_transaction() as conn:
        cursor = conn.execute(
            "UPDATE tracks SET is_favorite = ? WHERE id = ?",
            (1 if favorite else 0, track_id),
        )
        found = cursor.rowcount > 0

    if not found:
        logger.warning(f"Cannot set favorite: track {track_id} not found")
        return False

    if events:
        events.emit(TRACKS_CHANGED, track_ids=[track_id], field="is_favorite")
    return True


def record_track_played(
    track_id: int,
    played_at: Optional[datetime] = None,
    events: Optional[LibraryEvents] = None,
) -> bool:
    """Increment a track's play count and set its last played time.

    Args:
        track_id: Track that finished playing
        played_at: When it was played (default: now, UTC)
        events: Channel notified after the change is committed

    Returns:
        True if the track exists
    """
    timestamp = format_timestamp(played_at or datetime.now(timezone.utc))
    with write_transaction() as conn:
        cursor = conn.execute(
            """
            UPDATE tracks
            SET play_count = play_count + 1, last_played_date = ?
            WHERE id = ?
            """,
            (timestamp, track_id),
        )
        found = cursor.rowcount > 0

    if not found:
        logger.warning(f"Cannot record play: track {track_id} not found")
        return False

    if events:
        events.emit(TRACKS_CHANGED, track_ids=[track_id], field="play_count")
    return True


def set_track_rating(
    track_id: int, rating: Optional[int], events: Optional[LibraryEvents] = None
) -> bool:
    """Set a track's rating (0-100) or clear it with None.

    Raises:
        ValueError: If the rating is out of range
    """
    if rating is not None and not 0 <= rating <= 100:
        raise ValueError(f"Rating must be between 0 and 100, got: {rating}")

    with write_transaction() as conn:
        cursor = conn.execute(
            "UPDATE tracks SET rating = ? WHERE id = ?", (rating, track_id)
        )
        found = cursor.rowcount > 0

    if found and events:
        events.emit(TRACKS_CHANGED, track_ids=[track_id], field="rating")
    return found
