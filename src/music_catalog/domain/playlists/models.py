"""Playlist records and smart playlist criteria."""

import json
import sqlite3
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

PLAYLIST_TYPES = ("regular", "smart")
SMART_PLAYLIST_TYPES = ("favorites", "mostPlayed", "recentlyPlayed", "custom")


@dataclass(frozen=True)
class SmartRule:
    field: str  # "artist", "playCount", "isFavorite", ...
    condition: str  # "contains", "equals", "greaterThan", ...
    value: str


@dataclass(frozen=True)
class SmartPlaylistCriteria:
    """Rules that define a smart playlist's membership.

    ``match_type`` is "all" (AND) or "any" (OR). ``limit`` caps the result
    after sorting.
    """

    match_type: str = "all"
    rules: List[SmartRule] = field(default_factory=list)
    limit: Optional[int] = None
    sort_by: Optional[str] = None
    sort_ascending: bool = True

    def to_json(self) -> str:
        return json.dumps(
            {
                "matchType": self.match_type,
                "rules": [
                    {"field": r.field, "condition": r.condition, "value": r.value}
                    for r in self.rules
                ],
                "limit": self.limit,
                "sortBy": self.sort_by,
                "sortAscending": self.sort_ascending,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, text: str) -> "SmartPlaylistCriteria":
        """Parse stored criteria.

        Raises:
            ValueError: If the JSON is malformed
        """
        try:
            data = json.loads(text)
            rules = [
                SmartRule(str(r["field"]), str(r["condition"]), str(r["value"]))
                for r in data.get("rules", [])
            ]
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Invalid smart playlist criteria: {e}") from e
        return cls(
            match_type=data.get("matchType", "all"),
            rules=rules,
            limit=data.get("limit"),
            sort_by=data.get("sortBy"),
            sort_ascending=bool(data.get("sortAscending", True)),
        )


@dataclass(frozen=True)
class Playlist:
    """A regular or smart playlist (membership is loaded separately)."""

    id: str
    name: str
    type: str = "regular"
    smart_type: Optional[str] = None
    is_user_editable: bool = True
    is_content_editable: bool = True
    date_created: Optional[str] = None
    date_modified: Optional[str] = None
    cover_artwork_data: Optional[bytes] = field(default=None, repr=False)
    smart_criteria: Optional[SmartPlaylistCriteria] = None
    sort_order: int = 0

    @property
    def is_smart(self) -> bool:
        return self.type == "smart"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Playlist":
        criteria = None
        if row["smart_criteria"]:
            try:
                criteria = SmartPlaylistCriteria.from_json(row["smart_criteria"])
            except ValueError as e:
                logger.warning(f"Playlist {row['id']} has unreadable criteria: {e}")
        return cls(
            id=row["id"],
            name=row["name"],
            type=row["type"],
            smart_type=row["smart_type"],
            is_user_editable=bool(row["is_user_editable"]),
            is_content_editable=bool(row["is_content_editable"]),
            date_created=row["date_created"],
            date_modified=row["date_modified"],
            cover_artwork_data=row["cover_artwork_data"],
            smart_criteria=criteria,
            sort_order=row["sort_order"],
        )
