#!/usr/bin/env python3
"""Tests for the two-phase batch processor."""

import time
from pathlib import Path

import pytest

from conftest import FakeExtractor, count_rows, make_audio_file, touch_later
from music_catalog.core.config import LibraryConfig
from music_catalog.core.database import get_db_connection
from music_catalog.core.events import BATCH_COMMITTED, LibraryEvents
from music_catalog.core.exceptions import BatchError
from music_catalog.domain.library import batch
from music_catalog.domain.library.folders import add_folder
from music_catalog.domain.library.models import TrackMetadata
from music_catalog.domain.library.queries import get_track_by_path
from music_catalog.domain.library.tracks import set_track_favorite


@pytest.fixture
def music_root(catalog_db):
    root = catalog_db / "music"
    root.mkdir()
    folder = add_folder(root)
    return Path(folder.path), folder.id


def test_new_files_are_inserted_with_placeholders(music_root):
    root, folder_id = music_root
    path = make_audio_file(root, "Song.mp3")
    extractor = FakeExtractor({"Song.mp3": TrackMetadata(duration=90.0)})

    result = batch.process_batch([(str(path), folder_id)], extractor)

    assert (result.new, result.updated, result.skipped) == (1, 0, 0)
    track = get_track_by_path(str(path))
    assert track.title == "Song"
    assert track.artist == "Unknown Artist"
    assert track.album == "Unknown Album"
    assert track.genre == "Unknown Genre"
    assert track.format == "mp3"
    assert track.album_id is None
    assert count_rows("artists") == 0


def test_unchanged_file_is_not_extracted_again(music_root):
    root, folder_id = music_root
    path = make_audio_file(root, "a.mp3")
    extractor = FakeExtractor()
    batch.process_batch([(str(path), folder_id)], extractor)

    result = batch.process_batch([(str(path), folder_id)], extractor)

    assert result.skipped == 1
    assert len(extractor.calls) == 1


def test_modified_file_is_merged_and_keeps_user_state(music_root):
    root, folder_id = music_root
    path = make_audio_file(root, "a.mp3")
    extractor = FakeExtractor(
        {"a.mp3": TrackMetadata(title="Help", artist="Queen", album="Jazz", duration=100.0)}
    )
    batch.process_batch([(str(path), folder_id)], extractor)
    track = get_track_by_path(str(path))
    set_track_favorite(track.id, True)

    touch_later(path)
    extractor.tags["a.mp3"] = TrackMetadata(title="Help!", artist="Queen", duration=100.0)
    result = batch.process_batch([(str(path), folder_id)], extractor)

    assert result.updated == 1
    updated = get_track_by_path(str(path))
    assert updated.id == track.id
    assert updated.title == "Help!"
    # Missing album tag does not clear the stored one
    assert updated.album == "Jazz"
    assert updated.is_favorite is True


def test_partial_tags_on_rescan_keep_entity_links(music_root):
    root, folder_id = music_root
    path = make_audio_file(root, "a.mp3")
    extractor = FakeExtractor({
        "a.mp3": TrackMetadata(
            title="Come Together", artist="The Beatles", album="Abbey Road", genre="Rock", duration=259.0
        )
    })
    batch.process_batch([(str(path), folder_id)], extractor)
    album_id = get_track_by_path(str(path)).album_id
    assert album_id is not None

    touch_later(path)
    extractor.tags["a.mp3"] = TrackMetadata(title="Come Together", genre="Pop", duration=259.0)
    result = batch.process_batch([(str(path), folder_id)], extractor)

    assert result.updated == 1
    track = get_track_by_path(str(path))
    assert (track.artist, track.album, track.genre) == ("The Beatles", "Abbey Road", "Pop")
    assert track.album_id == album_id
    with get_db_connection() as conn:
        linked = conn.execute("""
            SELECT a.name, a.total_tracks FROM track_artists ta
            JOIN artists a ON a.id = ta.artist_id
            WHERE ta.track_id = ? AND ta.role = 'artist'
        """, (track.id,)).fetchall()
        genres = conn.execute("""
            SELECT g.name FROM track_genres tg JOIN genres g ON g.id = tg.genre_id
            WHERE tg.track_id = ?
        """, (track.id,)).fetchall()
    assert [tuple(row) for row in linked] == [("The Beatles", 1)]
    assert [row[0] for row in genres] == ["Pop"]


def test_failure_mid_batch_rolls_back_everything(music_root, monkeypatch):
    """A failure in the write phase leaves no partial rows behind."""
    root, folder_id = music_root
    items = [(str(make_audio_file(root, f"{n}.mp3")), folder_id) for n in "abc"]
    extractor = FakeExtractor(
        {f"{n}.mp3": TrackMetadata(title=n, artist=f"Artist {n}", album="X") for n in "abc"}
    )
    real_rebuild = batch.rebuild_track_relationships
    calls = []

    def failing_rebuild(conn, track_id, metadata):
        calls.append(track_id)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real_rebuild(conn, track_id, metadata)

    monkeypatch.setattr(batch, "rebuild_track_relationships", failing_rebuild)

    with pytest.raises(BatchError) as excinfo:
        batch.process_batch(items, extractor)

    assert sorted(excinfo.value.paths) == sorted(path for path, _ in items)
    assert count_rows("tracks") == 0
    assert count_rows("artists") == 0
    assert count_rows("albums") == 0


def test_extraction_timeout_skips_only_that_file(music_root):
    root, folder_id = music_root
    fast = make_audio_file(root, "fast.mp3")
    slow = make_audio_file(root, "slow.mp3")

    def extractor(path):
        if path.endswith("slow.mp3"):
            time.sleep(1.0)
        return TrackMetadata(title=Path(path).stem)

    result = batch.process_batch(
        [(str(fast), folder_id), (str(slow), folder_id)],
        extractor,
        LibraryConfig(extraction_timeout=0.2),
    )

    assert result.new == 1
    assert result.failed == [str(slow)]
    assert get_track_by_path(str(slow)) is None
    assert get_track_by_path(str(fast)) is not None


def test_hung_extractors_share_one_deadline(music_root):
    root, folder_id = music_root
    paths = [make_audio_file(root, f"slow{n}.mp3") for n in range(4)]

    def extractor(path):
        time.sleep(2.0)
        return TrackMetadata(title=Path(path).stem)

    started = time.monotonic()
    result = batch.process_batch(
        [(str(path), folder_id) for path in paths],
        extractor,
        LibraryConfig(extraction_timeout=0.25),
    )
    elapsed = time.monotonic() - started

    assert result.new == 0
    assert sorted(result.failed) == sorted(str(path) for path in paths)
    # Four separate waits would take a full second
    assert elapsed < 0.75


def test_extractor_error_skips_file(music_root):
    root, folder_id = music_root
    good = make_audio_file(root, "good.mp3")
    bad = make_audio_file(root, "bad.mp3")

    def extractor(path):
        if path.endswith("bad.mp3"):
            raise OSError("unreadable")
        return TrackMetadata(title="Good")

    result = batch.process_batch([(str(good), folder_id), (str(bad), folder_id)], extractor)

    assert result.new == 1
    assert result.failed == [str(bad)]


def test_committed_batch_emits_event(music_root):
    root, folder_id = music_root
    path = make_audio_file(root, "a.mp3")
    events = LibraryEvents()
    received = []
    events.subscribe(received.append)

    batch.process_batch([(str(path), folder_id)], FakeExtractor(), events=events)
    batch.process_batch([(str(path), folder_id)], FakeExtractor(), events=events)

    assert len(received) == 1
    assert received[0].kind == BATCH_COMMITTED
    assert received[0].details["new"] == 1


def test_is_modified_compares_timestamps():
    assert batch.is_modified("2024-01-02 00:00:00.000000", None)
    assert batch.is_modified("2024-01-02 00:00:00.000000", "2024-01-01 00:00:00.000000")
    assert not batch.is_modified("2024-01-01 00:00:00.000000", "2024-01-01 00:00:00.000000")
