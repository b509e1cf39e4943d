"""Field merge policy for tracks and albums.

Every mergeable column has one ``FieldRule`` saying when an incoming value
counts as present, when it counts as different from the stored value, and
whether the stored value may be replaced. Updates are computed by running
the same loop over the rule table instead of per-field conditionals.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from .models import ExtendedMetadata, TrackMetadata

# Durations closer than this are considered equal
DURATION_ABSOLUTE_TOLERANCE = 0.1  # seconds
DURATION_RELATIVE_TOLERANCE = 0.001


def is_present(value: Any) -> bool:
    """A value is present when it is set and, for text, not blank."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (bytes, bytearray)):
        return len(value) > 0
    return True


def is_different(current: Any, incoming: Any) -> bool:
    return current != incoming


def duration_differs(current: Any, incoming: Any) -> bool:
    if current is None:
        return True
    tolerance = max(
        DURATION_ABSOLUTE_TOLERANCE, DURATION_RELATIVE_TOLERANCE * abs(current)
    )
    return abs(float(incoming) - float(current)) > tolerance


def always(current: Any) -> bool:
    return True


def only_if_unset(current: Any) -> bool:
    return not is_present(current)


@dataclass(frozen=True)
class FieldRule:
    """Merge policy for one column."""

    present: Callable[[Any], bool] = is_present
    different: Callable[[Any, Any], bool] = is_different
    may_overwrite: Callable[[Any], bool] = always


DEFAULT_RULE = FieldRule()
FILL_ONLY_RULE = FieldRule(may_overwrite=only_if_unset)

# Track columns fed from extracted metadata
TRACK_MERGE_RULES: Dict[str, FieldRule] = {
    "title": DEFAULT_RULE,
    "artist": DEFAULT_RULE,
    "album": DEFAULT_RULE,
    "composer": DEFAULT_RULE,
    "genre": DEFAULT_RULE,
    "year": DEFAULT_RULE,
    "duration": FieldRule(
        present=lambda v: v is not None and v > 0, different=duration_differs
    ),
    "artwork_data": FILL_ONLY_RULE,
    "album_artist": DEFAULT_RULE,
    "track_number": DEFAULT_RULE,
    "total_tracks": DEFAULT_RULE,
    "disc_number": DEFAULT_RULE,
    "total_discs": DEFAULT_RULE,
    # User ratings win over tag ratings
    "rating": FILL_ONLY_RULE,
    "compilation": DEFAULT_RULE,
    "release_date": DEFAULT_RULE,
    "original_release_date": DEFAULT_RULE,
    "bpm": DEFAULT_RULE,
    "media_type": DEFAULT_RULE,
    "bitrate": DEFAULT_RULE,
    "sample_rate": DEFAULT_RULE,
    "channels": DEFAULT_RULE,
    "codec": DEFAULT_RULE,
    "bit_depth": DEFAULT_RULE,
    "sort_title": DEFAULT_RULE,
    "sort_artist": DEFAULT_RULE,
    "sort_album": DEFAULT_RULE,
    "sort_album_artist": DEFAULT_RULE,
    # Replaced wholesale on every update, even when cleared
    "extended_metadata": FieldRule(present=lambda v: True),
}

# Album fields are filled from the first track that has them, never replaced.
# albums.total_tracks is a derived count owned by update_entity_statistics.
ALBUM_MERGE_RULES: Dict[str, FieldRule] = {
    "release_year": FILL_ONLY_RULE,
    "release_date": FILL_ONLY_RULE,
    "total_discs": FILL_ONLY_RULE,
    "label": FILL_ONLY_RULE,
    "artwork_data": FILL_ONLY_RULE,
}


def metadata_to_columns(metadata: TrackMetadata) -> Dict[str, Any]:
    """Map extracted metadata onto track column values."""
    columns = {}
    for column in TRACK_MERGE_RULES:
        if column == "extended_metadata":
            columns[column] = metadata.extended.to_json()
        else:
            columns[column] = getattr(metadata, column)
    if columns["compilation"] is not None:
        columns["compilation"] = int(bool(columns["compilation"]))
    return columns


def merge_fields(
    rules: Mapping[str, FieldRule],
    current: Mapping[str, Any],
    incoming: Mapping[str, Any],
) -> Dict[str, Any]:
    """Compute the column updates that the rules allow.

    Args:
        rules: Column name -> rule
        current: Stored values (a row or dict)
        incoming: Candidate values

    Returns:
        Columns to update with their new values (empty when nothing changes)
    """
    changes = {}
    for column, rule in rules.items():
        if column not in incoming:
            continue
        new_value = incoming[column]
        old_value = current[column]
        if not rule.present(new_value):
            continue
        if not rule.different(old_value, new_value):
            continue
        if not rule.may_overwrite(old_value):
            continue
        changes[column] = new_value
    return changes


def compute_track_changes(
    current: Mapping[str, Any], metadata: TrackMetadata
) -> Dict[str, Any]:
    """Column updates for an existing track row given fresh metadata."""
    return merge_fields(TRACK_MERGE_RULES, current, metadata_to_columns(metadata))


def columns_to_metadata(columns: Mapping[str, Any]) -> TrackMetadata:
    """Rebuild metadata from stored track columns, the inverse of metadata_to_columns."""
    values = {
        column: columns[column]
        for column in TRACK_MERGE_RULES
        if column != "extended_metadata" and column in columns
    }
    if values.get("duration") is None:
        values["duration"] = 0.0
    if values.get("compilation") is not None:
        values["compilation"] = bool(values["compilation"])
    return TrackMetadata(
        **values,
        extended=ExtendedMetadata.from_json(columns.get("extended_metadata")),
    )
