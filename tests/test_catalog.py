#!/usr/bin/env python3
"""Tests for the catalog lifecycle."""

import pytest

from conftest import FakeExtractor, make_audio_file
from music_catalog.catalog import close_catalog, open_catalog
from music_catalog.core.preferences import load_preferences
from music_catalog.domain.library.folders import add_folder
from music_catalog.domain.library.models import TrackMetadata
from music_catalog.domain.library.queries import get_total_track_count
from music_catalog.domain.playlists.crud import get_all_playlists


@pytest.fixture
def catalog(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    return open_catalog(
        config_path=tmp_path / "config.toml",
        preferences_path=tmp_path / "preferences.toml",
        configure_logging=False,
    )


def test_open_seeds_built_in_playlists_once(catalog, tmp_path):
    assert len(get_all_playlists()) == 3

    open_catalog(tmp_path / "config.toml", tmp_path / "preferences.toml", configure_logging=False)

    assert len(get_all_playlists()) == 3


def test_scan_and_duplicate_toggle(catalog, tmp_path):
    root = tmp_path / "music"
    make_audio_file(root, "a.mp3")
    make_audio_file(root, "b.mp3")
    add_folder(root)
    same = TrackMetadata(title="Help", artist="Queen", duration=100.0)
    events = []
    catalog.events.subscribe(events.append)

    results = catalog.scan(extractor=FakeExtractor({"a.mp3": same, "b.mp3": same}))

    assert results[0].new == 2
    assert events
    assert get_total_track_count(catalog.preferences) == 2
    catalog.set_hide_duplicates(True)
    assert get_total_track_count(catalog.preferences) == 1

    catalog.config.duplicates.enabled = False
    assert catalog.refresh_duplicates() == 2
    assert get_total_track_count(catalog.preferences) == 2


def test_close_saves_preferences(catalog, tmp_path):
    catalog.set_hide_duplicates(True)

    close_catalog(catalog)

    assert load_preferences(tmp_path / "preferences.toml").hide_duplicates is True
