#!/usr/bin/env python3
"""Tests for duplicate track detection."""

from conftest import insert_folder, insert_track
from music_catalog.core.config import DuplicatesConfig
from music_catalog.core.database import get_db_connection, write_transaction
from music_catalog.domain.library.duplicates import (
    compute_duplicate_states,
    detect_duplicates,
    duplicate_key,
    refresh_duplicates,
)


def _row(track_id, title, artist, duration, bitrate=None):
    return {"id": track_id, "title": title, "artist": artist, "duration": duration, "bitrate": bitrate}


def test_duplicate_key_normalizes_title_and_artist():
    assert duplicate_key("Hey Jude!", "The Beatles") == duplicate_key("hey jude", "Beatles, The")
    assert duplicate_key("", "The Beatles") is None


def test_highest_bitrate_copy_is_canonical():
    states = compute_duplicate_states(
        [
            _row(1, "Yesterday", "The Beatles", 125.0, bitrate=128),
            _row(2, "Yesterday", "Beatles, The", 126.0, bitrate=320),
            _row(3, "Yesterday", "The Beatles", 300.0, bitrate=320),
        ],
        DuplicatesConfig(duration_tolerance=2.0),
    )

    assert states[2] == (0, None, 2)
    assert states[1] == (1, 2, 2)
    # Live version is far longer: not a duplicate
    assert states[3] == (0, None, None)


def test_lowest_id_wins_without_bitrate_preference():
    states = compute_duplicate_states(
        [_row(5, "Help", "Queen", 100.0, 320), _row(4, "Help", "Queen", 100.5, 128)],
        DuplicatesConfig(prefer_higher_bitrate=False),
    )

    assert states[4] == (0, None, 4)
    assert states[5] == (1, 4, 4)


def test_disabled_detection_clears_everything():
    states = compute_duplicate_states(
        [_row(1, "Help", "Queen", 100.0), _row(2, "Help", "Queen", 100.0)],
        DuplicatesConfig(enabled=False),
    )

    assert set(states.values()) == {(0, None, None)}


def test_detect_duplicates_writes_flags_and_updates_stats(catalog_db):
    with write_transaction() as conn:
        folder_id = insert_folder(conn)
        insert_track(conn, folder_id, "/music/a.mp3", title="Help", artist="Queen", bitrate=128)
        insert_track(conn, folder_id, "/music/b.mp3", title="Help", artist="Queen", bitrate=320)
        changed = detect_duplicates(conn, DuplicatesConfig())
        again = detect_duplicates(conn, DuplicatesConfig())

    assert changed == 2
    assert again == 0
    with get_db_connection() as conn:
        rows = conn.execute("SELECT path, is_duplicate FROM tracks ORDER BY path").fetchall()
    assert [(r["path"], r["is_duplicate"]) for r in rows] == [
        ("/music/a.mp3", 1),
        ("/music/b.mp3", 0),
    ]


def test_refresh_duplicates_applies_new_settings(catalog_db):
    with write_transaction() as conn:
        folder_id = insert_folder(conn)
        insert_track(conn, folder_id, "/music/a.mp3", title="Help", artist="Queen")
        insert_track(conn, folder_id, "/music/b.mp3", title="Help", artist="Queen")

    assert refresh_duplicates(DuplicatesConfig()) == 2
    assert refresh_duplicates(DuplicatesConfig(enabled=False)) == 2
    with get_db_connection() as conn:
        assert conn.execute("SELECT SUM(is_duplicate) FROM tracks").fetchone()[0] == 0
