#!/usr/bin/env python3
"""Tests for regular playlist persistence."""

import sqlite3

import pytest

from conftest import insert_folder, insert_track
from music_catalog.core.database import write_transaction
from music_catalog.core.events import PLAYLISTS_CHANGED, LibraryEvents
from music_catalog.core.exceptions import PlaylistNotEditableError
from music_catalog.core.preferences import Preferences
from music_catalog.domain.pinned.store import get_pinned_items, pin_playlist
from music_catalog.domain.playlists.crud import (
    add_track_to_playlist,
    create_playlist,
    delete_playlist,
    get_all_playlists,
    get_playlist,
    get_playlist_by_name,
    get_playlist_track_ids,
    get_playlist_tracks,
    move_track_in_playlist,
    remove_track_from_playlist,
    rename_playlist,
    save_playlist,
    seed_default_playlists,
)
from music_catalog.domain.playlists.models import Playlist


@pytest.fixture
def track_ids(catalog_db):
    with write_transaction() as conn:
        folder_id = insert_folder(conn)
        ids = [insert_track(conn, folder_id, f"/music/{n}.mp3", title=f"Song {n}") for n in range(4)]
        conn.execute("UPDATE tracks SET is_duplicate = 1 WHERE id = ?", (ids[3],))
    return ids


def test_create_playlist_keeps_order_and_drops_repeats(track_ids):
    playlist = create_playlist("Road Trip", [track_ids[2], track_ids[0], track_ids[2]])

    assert playlist.type == "regular"
    assert playlist.is_content_editable
    assert get_playlist_track_ids(playlist.id) == [track_ids[2], track_ids[0]]


def test_empty_name_is_rejected(track_ids):
    with pytest.raises(ValueError):
        create_playlist("   ")


def test_save_replaces_membership(track_ids):
    playlist = create_playlist("Mix", track_ids[:2])

    save_playlist(Playlist(id=playlist.id, name="Mix 2"), [track_ids[1], track_ids[2]])

    assert get_playlist(playlist.id).name == "Mix 2"
    assert get_playlist_track_ids(playlist.id) == [track_ids[1], track_ids[2]]


def test_failed_save_keeps_old_membership(track_ids):
    """Membership replacement is all-or-nothing."""
    playlist = create_playlist("Mix", track_ids[:2])

    with pytest.raises(sqlite3.IntegrityError):
        save_playlist(Playlist(id=playlist.id, name="Mix"), [track_ids[0], 99999])

    assert get_playlist_track_ids(playlist.id) == track_ids[:2]


def test_save_inserts_new_playlist(track_ids):
    save_playlist(Playlist(id="fixed-id", name="Imported"), track_ids[:1])

    assert get_playlist_by_name("imported").id == "fixed-id"


def test_add_and_remove_tracks(track_ids):
    events = LibraryEvents()
    received = []
    events.subscribe(received.append)
    playlist = create_playlist("Mix", [track_ids[0]])

    assert add_track_to_playlist(playlist.id, track_ids[1], events) is True
    assert add_track_to_playlist(playlist.id, track_ids[1], events) is False
    assert add_track_to_playlist(playlist.id, track_ids[2], events) is True
    assert remove_track_from_playlist(playlist.id, track_ids[1], events) is True
    assert remove_track_from_playlist(playlist.id, track_ids[1], events) is False

    assert get_playlist_track_ids(playlist.id) == [track_ids[0], track_ids[2]]
    assert [e.details["action"] for e in received if e.kind == PLAYLISTS_CHANGED] == [
        "tracks_added",
        "tracks_added",
        "tracks_removed",
    ]


def test_missing_playlist_raises(track_ids):
    with pytest.raises(ValueError):
        add_track_to_playlist("nope", track_ids[0])


def test_move_track(track_ids):
    playlist = create_playlist("Mix", track_ids[:3])

    assert move_track_in_playlist(playlist.id, 0, 2) is True
    assert move_track_in_playlist(playlist.id, 0, 9) is False

    assert get_playlist_track_ids(playlist.id) == [track_ids[1], track_ids[2], track_ids[0]]


def test_playlist_tracks_honor_duplicate_toggle(track_ids):
    playlist = create_playlist("Mix", [track_ids[3], track_ids[0]])

    assert [t.id for t in get_playlist_tracks(playlist.id)] == [track_ids[3], track_ids[0]]
    assert [t.id for t in get_playlist_tracks(playlist.id, Preferences(hide_duplicates=True))] == [
        track_ids[0]
    ]
    assert get_playlist_tracks("nope") == []


def test_deleted_track_leaves_playlists(track_ids):
    playlist = create_playlist("Mix", track_ids[:2])
    with write_transaction() as conn:
        conn.execute("DELETE FROM tracks WHERE id = ?", (track_ids[0],))

    assert get_playlist_track_ids(playlist.id) == [track_ids[1]]


def test_rename_and_delete(track_ids):
    playlist = create_playlist("Mix", track_ids[:1])
    pin_playlist(playlist)

    rename_playlist(playlist.id, "Better Mix")
    assert get_playlist(playlist.id).name == "Better Mix"

    assert delete_playlist(playlist.id) is True
    assert get_playlist(playlist.id) is None
    assert get_pinned_items() == []
    assert delete_playlist(playlist.id) is False


def test_seeded_playlists_are_protected(track_ids):
    seeded = seed_default_playlists()

    assert [p.smart_type for p in seeded] == ["favorites", "mostPlayed", "recentlyPlayed"]
    assert seed_default_playlists() == []
    with pytest.raises(PlaylistNotEditableError):
        rename_playlist(seeded[0].id, "Faves")
    with pytest.raises(PlaylistNotEditableError):
        delete_playlist(seeded[0].id)


def test_all_playlists_list_built_ins_first(track_ids):
    seed_default_playlists()
    create_playlist("Alpha")
    create_playlist("zulu")

    names = [p.name for p in get_all_playlists()]

    assert names[:3] == ["Favorite Songs", "Top 25 Most Played", "Top 25 Recently Played"]
    assert names[3:] == ["Alpha", "zulu"]
