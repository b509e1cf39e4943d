#!/usr/bin/env python3
"""Tests for folder scanning and reconciliation."""

from pathlib import Path

import pytest

from conftest import FakeExtractor, count_rows, make_audio_file, touch_later
from music_catalog.core.config import Config
from music_catalog.core.database import get_db_connection
from music_catalog.core.events import BATCH_COMMITTED, SCAN_FINISHED, LibraryEvents
from music_catalog.core.exceptions import ScanCancelled
from music_catalog.domain.library import batch
from music_catalog.domain.library.folders import add_folder, get_folder
from music_catalog.domain.library.models import FilterItem, TrackMetadata
from music_catalog.domain.library.queries import (
    get_album_count,
    get_artist_count,
    get_distinct_values,
    get_filter_items_with_counts,
    get_tracks_by_filter_value,
)
from music_catalog.domain.library.scanner import (
    CancellationToken,
    discover_audio_files,
    scan_folder,
    scan_folders,
)
from music_catalog.domain.library.search import search_tracks


@pytest.fixture
def beatles_folder(catalog_db):
    root = catalog_db / "music"
    make_audio_file(root, "a.mp3")
    make_audio_file(root, "b.mp3")
    folder = add_folder(root)
    extractor = FakeExtractor({
        "a.mp3": TrackMetadata(
            title="Come Together", artist="The Beatles", album="Abbey Road", duration=259.0
        ),
        "b.mp3": TrackMetadata(
            title="Something", artist="Beatles, The", album="Abbey Road", duration=182.0
        ),
    })
    return folder, Path(folder.path), extractor


def _snapshot():
    with get_db_connection() as conn:
        tracks = [tuple(row) for row in conn.execute("SELECT * FROM tracks ORDER BY id")]
        artists = [tuple(row) for row in conn.execute("SELECT * FROM artists ORDER BY id")]
        albums = [tuple(row) for row in conn.execute("SELECT * FROM albums ORDER BY id")]
    return tracks, artists, albums


def test_discovery_skips_hidden_and_package_entries(tmp_path):
    make_audio_file(tmp_path, "song.MP3")
    make_audio_file(tmp_path, "cover.jpg")
    make_audio_file(tmp_path, ".hidden.mp3")
    make_audio_file(tmp_path / ".cache", "cached.mp3")
    make_audio_file(tmp_path / "Project.logicx", "bounce.wav")
    make_audio_file(tmp_path / "Disc 2", "track.flac")

    found = discover_audio_files(tmp_path, Config().library.supported_formats)

    assert [p.relative_to(tmp_path).as_posix() for p in found] == [
        "Disc 2/track.flac",
        "song.MP3",
    ]


def test_artist_spellings_share_one_artist_and_album(beatles_folder):
    folder, _, extractor = beatles_folder

    result = scan_folder(folder.id, extractor)

    assert result.new == 2
    assert count_rows("tracks") == 2
    assert count_rows("artists") == 1
    assert count_rows("albums") == 1
    assert get_artist_count() == 1
    assert get_album_count() == 1
    with get_db_connection() as conn:
        album_ids = {row[0] for row in conn.execute("SELECT album_id FROM tracks")}
    assert len(album_ids) == 1 and None not in album_ids
    assert {t.title for t in search_tracks("Abbey")} == {"Come Together", "Something"}
    assert get_folder(folder.id).track_count == 2


def test_filters_list_resolved_artists_and_split_genres(beatles_folder):
    folder, _, extractor = beatles_folder
    extractor.tags["a.mp3"] = TrackMetadata(
        title="Come Together", artist="The Beatles", album="Abbey Road", genre="Rock; Pop", duration=259.0
    )
    extractor.tags["b.mp3"] = TrackMetadata(
        title="Something", artist="Beatles, The", album="Abbey Road", genre="Rock", duration=182.0
    )

    scan_folder(folder.id, extractor)

    assert get_distinct_values("artists") == ["The Beatles"]
    assert get_filter_items_with_counts("artists") == [FilterItem("The Beatles", 2)]
    assert get_distinct_values("albums") == ["Abbey Road"]
    assert get_distinct_values("genres") == ["Pop", "Rock"]
    assert {t.title for t in get_tracks_by_filter_value("genres", "Rock")} == {
        "Come Together",
        "Something",
    }
    assert {t.title for t in get_tracks_by_filter_value("artists", "Beatles, The")} == {
        "Come Together",
        "Something",
    }


def test_rescanning_unchanged_folder_writes_nothing(beatles_folder):
    folder, _, extractor = beatles_folder
    scan_folder(folder.id, extractor)
    before = _snapshot()
    index_before = [t.id for t in search_tracks("Abbey")]

    result = scan_folder(folder.id, extractor)

    assert (result.new, result.updated, result.removed) == (0, 0, 0)
    assert result.skipped == 2
    assert len(extractor.calls) == 2
    assert _snapshot() == before
    assert [t.id for t in search_tracks("Abbey")] == index_before


def test_deleted_file_is_removed_on_rescan(beatles_folder):
    folder, root, extractor = beatles_folder
    scan_folder(folder.id, extractor)

    (root / "b.mp3").unlink()
    result = scan_folder(folder.id, extractor)

    assert result.removed == 1
    assert count_rows("tracks") == 1
    assert get_folder(folder.id).track_count == 1
    assert [t.title for t in search_tracks("Something")] == []
    assert [t.title for t in search_tracks("Abbey")] == ["Come Together"]


def test_modified_file_is_updated(beatles_folder):
    folder, root, extractor = beatles_folder
    scan_folder(folder.id, extractor)

    touch_later(root / "a.mp3")
    extractor.tags["a.mp3"] = TrackMetadata(
        title="Come Together (Remastered)", artist="The Beatles", album="Abbey Road", duration=259.0
    )
    result = scan_folder(folder.id, extractor)

    assert result.updated == 1
    assert result.skipped == 1
    assert [t.title for t in search_tracks("remastered")] == ["Come Together (Remastered)"]


def test_new_file_is_added_on_rescan(beatles_folder):
    folder, root, extractor = beatles_folder
    scan_folder(folder.id, extractor)

    make_audio_file(root / "Bonus", "c.mp3")
    result = scan_folder(folder.id, extractor)

    assert result.new == 1
    assert get_folder(folder.id).track_count == 3


def test_failed_batch_does_not_stop_the_scan(beatles_folder, monkeypatch):
    folder, _, extractor = beatles_folder
    config = Config()
    config.library.batch_size = 1
    real_rebuild = batch.rebuild_track_relationships
    calls = []

    def failing_rebuild(conn, track_id, metadata):
        calls.append(track_id)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return real_rebuild(conn, track_id, metadata)

    monkeypatch.setattr(batch, "rebuild_track_relationships", failing_rebuild)

    result = scan_folder(folder.id, extractor, config)

    assert result.failed_batches == 1
    assert result.new == 1
    assert count_rows("tracks") == 1
    assert get_folder(folder.id).shasum_hash is None


def test_unchanged_folder_hash_skips_scan(beatles_folder):
    folder, _, extractor = beatles_folder
    scan_folder(folder.id, extractor)

    result = scan_folder(folder.id, extractor, skip_unchanged=True)

    assert result.unchanged_folder is True
    assert result.discovered == 2


def test_inaccessible_folder_keeps_its_tracks(beatles_folder):
    folder, root, extractor = beatles_folder
    scan_folder(folder.id, extractor)

    for path in root.iterdir():
        path.unlink()
    root.rmdir()
    result = scan_folder(folder.id, extractor)

    assert result.access_denied is True
    assert count_rows("tracks") == 2


def test_cancelled_scan_stops_before_next_batch(beatles_folder):
    folder, _, extractor = beatles_folder
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ScanCancelled):
        scan_folders([folder.id], extractor, cancel=token)

    assert count_rows("tracks") == 0


def test_scan_emits_batch_and_finished_events(beatles_folder):
    folder, _, extractor = beatles_folder
    events = LibraryEvents()
    received = []
    events.subscribe(received.append)

    scan_folders(None, extractor, events=events)

    assert [e.kind for e in received] == [BATCH_COMMITTED, SCAN_FINISHED]
    assert received[-1].details == {"folder_ids": [folder.id], "changed": True}


def test_duplicates_are_flagged_after_scan(catalog_db):
    root = catalog_db / "music"
    make_audio_file(root, "low.mp3")
    make_audio_file(root, "high.flac")
    folder = add_folder(root)
    extractor = FakeExtractor({
        "low.mp3": TrackMetadata(title="Help", artist="Queen", duration=100.0, bitrate=128),
        "high.flac": TrackMetadata(title="Help", artist="Queen", duration=100.4, bitrate=900),
    })

    scan_folder(folder.id, extractor)

    with get_db_connection() as conn:
        rows = conn.execute("SELECT filename, is_duplicate FROM tracks ORDER BY filename").fetchall()
    assert [(r[0], r[1]) for r in rows] == [("high.flac", 0), ("low.mp3", 1)]


def test_unknown_folder_raises(catalog_db):
    with pytest.raises(ValueError):
        scan_folder(999, FakeExtractor())
