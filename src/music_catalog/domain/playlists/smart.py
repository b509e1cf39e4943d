"""Smart playlist rule validation and evaluation.

Smart playlists never store membership. Their criteria are compiled to a
parameterized WHERE clause and evaluated against the tracks table on every
read, so a track whose properties change moves in or out immediately.
"""

import re
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from loguru import logger

from music_catalog.core.database import get_db_connection
from music_catalog.core.preferences import Preferences
from music_catalog.domain.library.models import Track
from music_catalog.domain.library.queries import apply_duplicate_filter
from music_catalog.domain.library.tracks import format_timestamp

from .models import Playlist, SmartPlaylistCriteria, SmartRule

MATCH_TYPES = ("all", "any")

# Field kinds decide which conditions apply and how values are compared
BOOLEAN, NUMERIC, TEXT, DATE, YEAR = "boolean", "numeric", "text", "date", "year"

# Rule field name to (column, kind); columns come only from this map
FIELD_TO_COLUMN = {
    "isFavorite": ("is_favorite", BOOLEAN),
    "playCount": ("play_count", NUMERIC),
    "lastPlayedDate": ("last_played_date", DATE),
    "title": ("title", TEXT),
    "artist": ("artist", TEXT),
    "album": ("album", TEXT),
    "genre": ("genre", TEXT),
    "year": ("year", YEAR),
    "composer": ("composer", TEXT),
    "albumArtist": ("album_artist", TEXT),
    "duration": ("duration", NUMERIC),
    "rating": ("rating", NUMERIC),
}
VALID_FIELDS = set(FIELD_TO_COLUMN)

TEXT_CONDITIONS = {"contains", "equals", "startsWith", "endsWith"}
NUMERIC_CONDITIONS = {"equals", "greaterThan", "lessThan"}
CONDITIONS_BY_KIND = {
    BOOLEAN: {"equals"},
    NUMERIC: NUMERIC_CONDITIONS,
    TEXT: TEXT_CONDITIONS,
    DATE: {"greaterThan", "lessThan"},
    YEAR: TEXT_CONDITIONS | NUMERIC_CONDITIONS,
}

SORT_COLUMNS = {
    "title": "title COLLATE NOCASE",
    "artist": "artist COLLATE NOCASE",
    "album": "album COLLATE NOCASE",
    "albumArtist": "IFNULL(album_artist, '') COLLATE NOCASE",
    "composer": "composer COLLATE NOCASE",
    "genre": "genre COLLATE NOCASE",
    "year": "year",
    "playCount": "play_count",
    "lastPlayedDate": "last_played_date",
    "dateAdded": "date_added",
    "duration": "duration",
    "rating": "IFNULL(rating, 0)",
}

_DAYS_VALUE = re.compile(r"^(\d+)\s*days$")


def validate_rule(rule: SmartRule) -> None:
    """Validate a rule's field, condition and value.

    Raises:
        ValueError: If the field is unknown, the condition does not apply to
                   the field, or the value cannot be compared
    """
    if rule.field not in FIELD_TO_COLUMN:
        raise ValueError(f"Invalid field: {rule.field}. Must be one of {sorted(VALID_FIELDS)}")

    _, kind = FIELD_TO_COLUMN[rule.field]
    allowed = CONDITIONS_BY_KIND[kind]
    if rule.condition not in allowed:
        raise ValueError(
            f"Condition '{rule.condition}' not valid for field '{rule.field}'. "
            f"Use one of: {sorted(allowed)}"
        )

    if kind == BOOLEAN and rule.value.lower() not in ("true", "false"):
        raise ValueError(f"Value for '{rule.field}' must be 'true' or 'false', got: {rule.value!r}")
    if kind == DATE and not _DAYS_VALUE.match(rule.value.strip()):
        raise ValueError(f"Value for '{rule.field}' must look like '7days', got: {rule.value!r}")
    if kind == NUMERIC or (kind == YEAR and rule.condition in ("greaterThan", "lessThan")):
        try:
            float(rule.value)
        except ValueError:
            raise ValueError(f"Value '{rule.value}' is not a valid number for field '{rule.field}'")


def validate_criteria(criteria: SmartPlaylistCriteria) -> None:
    """Validate complete criteria.

    Raises:
        ValueError: If any part of the criteria is invalid
    """
    if criteria.match_type not in MATCH_TYPES:
        raise ValueError(f"Match type must be one of {MATCH_TYPES}, got: {criteria.match_type}")
    if criteria.limit is not None and criteria.limit <= 0:
        raise ValueError(f"Limit must be positive, got: {criteria.limit}")
    if criteria.sort_by is not None and criteria.sort_by not in SORT_COLUMNS:
        raise ValueError(f"Invalid sort field: {criteria.sort_by}. Must be one of {sorted(SORT_COLUMNS)}")
    for rule in criteria.rules:
        validate_rule(rule)


def _like_pattern(value: str, prefix: str, suffix: str) -> str:
    escaped = value.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{prefix}{escaped}{suffix}"


def _text_condition(column: str, condition: str, value: str) -> Tuple[str, list]:
    lowered = f"LOWER(IFNULL({column}, ''))"
    if condition == "equals":
        return f"{lowered} = ?", [value.lower()]
    pattern = {
        "contains": _like_pattern(value, "%", "%"),
        "startsWith": _like_pattern(value, "", "%"),
        "endsWith": _like_pattern(value, "%", ""),
    }[condition]
    return f"{lowered} LIKE ? ESCAPE '\\'", [pattern]


_NUMERIC_OPERATORS = {"equals": "=", "greaterThan": ">", "lessThan": "<"}


def _rule_condition(rule: SmartRule, now: datetime) -> Tuple[str, list]:
    column, kind = FIELD_TO_COLUMN[rule.field]

    if kind == BOOLEAN:
        return f"{column} = ?", [1 if rule.value.lower() == "true" else 0]

    if kind == NUMERIC:
        operator = _NUMERIC_OPERATORS[rule.condition]
        return f"IFNULL({column}, 0) {operator} ?", [float(rule.value)]

    if kind == DATE:
        days = int(_DAYS_VALUE.match(rule.value.strip()).group(1))
        cutoff = format_timestamp(now - timedelta(days=days))
        operator = ">" if rule.condition == "greaterThan" else "<"
        return f"({column} IS NOT NULL AND {column} {operator} ?)", [cutoff]

    if kind == YEAR and rule.condition in ("greaterThan", "lessThan"):
        operator = _NUMERIC_OPERATORS[rule.condition]
        return (
            f"(year GLOB '[0-9][0-9][0-9][0-9]*' AND CAST(SUBSTR(year, 1, 4) AS INTEGER) {operator} ?)",
            [float(rule.value)],
        )

    return _text_condition(column, rule.condition, rule.value)


def build_criteria_query(
    criteria: SmartPlaylistCriteria, now: Optional[datetime] = None
) -> Tuple[str, list]:
    """Build a SQL WHERE clause from smart playlist criteria.

    Args:
        criteria: Validated criteria
        now: Reference time for relative date rules (default: now, UTC)

    Returns:
        Tuple of (where_clause, parameters) for a parameterized query

    Example:
        criteria = SmartPlaylistCriteria(rules=[SmartRule("playCount", "greaterThan", "3")])
        Returns: ("(IFNULL(play_count, 0) > ?)", [3.0])
    """
    now = now or datetime.now(timezone.utc)

    if not criteria.rules:
        # An empty AND is true, an empty OR is false
        return ("1 = 1", []) if criteria.match_type == "all" else ("0 = 1", [])

    parts = []
    params: list = []
    for rule in criteria.rules:
        sql, rule_params = _rule_condition(rule, now)
        parts.append(sql)
        params.extend(rule_params)

    conjunction = " AND " if criteria.match_type == "all" else " OR "
    return "(" + conjunction.join(parts) + ")", params


def build_order_clause(criteria: SmartPlaylistCriteria) -> str:
    if criteria.sort_by is None:
        return "title COLLATE NOCASE, id"
    direction = "ASC" if criteria.sort_ascending else "DESC"
    return f"{SORT_COLUMNS[criteria.sort_by]} {direction}, title COLLATE NOCASE, id"


def is_favorites_playlist(playlist: Playlist) -> bool:
    """True when the playlist's membership is exactly "is favorite".

    Adding to or removing from such a playlist maps onto the favorite
    toggle instead of being rejected.
    """
    if not playlist.is_smart:
        return False
    if playlist.smart_type == "favorites":
        return True
    criteria = playlist.smart_criteria
    return (
        criteria is not None
        and len(criteria.rules) == 1
        and criteria.rules[0].field == "isFavorite"
        and criteria.rules[0].condition == "equals"
        and criteria.rules[0].value.lower() == "true"
    )


def evaluate_criteria(
    criteria: SmartPlaylistCriteria,
    preferences: Optional[Preferences] = None,
    now: Optional[datetime] = None,
) -> List[Track]:
    """Compute the tracks matching criteria: filter, then sort, then limit."""
    where, params = build_criteria_query(criteria, now)
    sql, params = apply_duplicate_filter(
        f"SELECT * FROM tracks WHERE {where}", params, preferences
    )
    sql += f" ORDER BY {build_order_clause(criteria)}"
    if criteria.limit is not None:
        sql += " LIMIT ?"
        params.append(criteria.limit)

    try:
        with get_db_connection() as conn:
            return [Track.from_row(row) for row in conn.execute(sql, params).fetchall()]
    except sqlite3.Error as e:
        logger.warning(f"Smart playlist query failed: {e}")
        return []


def evaluate_smart_playlist(
    playlist: Playlist,
    preferences: Optional[Preferences] = None,
    now: Optional[datetime] = None,
) -> List[Track]:
    """Recompute a smart playlist's tracks. Regular playlists give []."""
    if not playlist.is_smart or playlist.smart_criteria is None:
        return []
    return evaluate_criteria(playlist.smart_criteria, preferences, now)


def favorites_criteria() -> SmartPlaylistCriteria:
    return SmartPlaylistCriteria(
        rules=[SmartRule("isFavorite", "equals", "true")],
        sort_by="title",
        sort_ascending=True,
    )


def most_played_criteria(limit: int = 25) -> SmartPlaylistCriteria:
    return SmartPlaylistCriteria(
        rules=[SmartRule("playCount", "greaterThan", "3")],
        limit=limit,
        sort_by="playCount",
        sort_ascending=False,
    )


def recently_played_criteria(limit: int = 25, days_back: int = 7) -> SmartPlaylistCriteria:
    return SmartPlaylistCriteria(
        rules=[SmartRule("lastPlayedDate", "greaterThan", f"{days_back}days")],
        limit=limit,
        sort_by="lastPlayedDate",
        sort_ascending=False,
    )


# (name, smart type, criteria) in display order
DEFAULT_SMART_PLAYLISTS = [
    ("Favorite Songs", "favorites", favorites_criteria()),
    ("Top 25 Most Played", "mostPlayed", most_played_criteria(25)),
    ("Top 25 Recently Played", "recentlyPlayed", recently_played_criteria(25, 7)),
]
