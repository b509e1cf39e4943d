#!/usr/bin/env python3
"""Tests for the field merge rule table."""

from music_catalog.domain.library.merge import (
    ALBUM_MERGE_RULES,
    TRACK_MERGE_RULES,
    columns_to_metadata,
    compute_track_changes,
    duration_differs,
    is_present,
    merge_fields,
    metadata_to_columns,
)
from music_catalog.domain.library.models import ExtendedMetadata, TrackMetadata


def _stored(**overrides):
    row = {column: None for column in TRACK_MERGE_RULES}
    row.update(overrides)
    return row


def test_presence():
    assert not is_present(None)
    assert not is_present("   ")
    assert not is_present(b"")
    assert is_present(0)
    assert is_present("x")


def test_duration_tolerance():
    assert not duration_differs(200.0, 200.05)
    assert duration_differs(200.0, 201.0)
    assert duration_differs(None, 10.0)


def test_missing_incoming_value_never_clears_stored_one():
    current = _stored(title="Help!", artist="The Beatles", duration=140.0)

    changes = compute_track_changes(current, TrackMetadata(title="Help!"))

    assert "artist" not in changes
    assert "duration" not in changes
    assert "title" not in changes


def test_changed_values_are_updated():
    current = _stored(title="Help", genre="Rock", duration=140.0)

    changes = compute_track_changes(
        current, TrackMetadata(title="Help!", genre="Pop", duration=150.0)
    )

    assert changes["title"] == "Help!"
    assert changes["genre"] == "Pop"
    assert changes["duration"] == 150.0


def test_artwork_and_rating_only_fill_empty_values():
    current = _stored(artwork_data=b"old", rating=80)

    changes = compute_track_changes(
        current, TrackMetadata(artwork_data=b"new", rating=20)
    )

    assert "artwork_data" not in changes
    assert "rating" not in changes

    filled = compute_track_changes(_stored(), TrackMetadata(artwork_data=b"new", rating=20))
    assert filled["artwork_data"] == b"new"
    assert filled["rating"] == 20


def test_extended_metadata_is_replaced_when_cleared():
    current = _stored(extended_metadata='{"isrc": "X"}')

    changes = compute_track_changes(current, TrackMetadata())

    assert changes["extended_metadata"] is None


def test_metadata_to_columns_serializes_extended_fields():
    columns = metadata_to_columns(
        TrackMetadata(compilation=True, extended=ExtendedMetadata(isrc="GB123"))
    )

    assert columns["compilation"] == 1
    assert columns["extended_metadata"] == '{"isrc": "GB123"}'


def test_stored_columns_rebuild_metadata():
    stored = _stored(
        title="Help", artist="Queen", compilation=1, duration=None,
        extended_metadata='{"label": "EMI"}',
    )
    stored["id"] = 7

    metadata = columns_to_metadata(stored)

    assert (metadata.title, metadata.artist) == ("Help", "Queen")
    assert metadata.compilation is True
    assert metadata.duration == 0.0
    assert metadata.extended.label == "EMI"


def test_album_rules_never_overwrite():
    current = {"release_year": 1969, "release_date": None, "total_discs": None,
               "label": None, "artwork_data": None}
    incoming = {"release_year": 2019, "release_date": "1969-09-26", "total_discs": 1,
                "label": "Apple", "artwork_data": None}

    changes = merge_fields(ALBUM_MERGE_RULES, current, incoming)

    assert changes == {"release_date": "1969-09-26", "total_discs": 1, "label": "Apple"}
