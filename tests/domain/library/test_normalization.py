#!/usr/bin/env python3
"""Tests for artist and album normalization."""

import pytest

from music_catalog.domain.library.normalization import (
    normalize_album_title,
    normalize_artist_name,
    normalize_for_matching,
    parse_artists,
    sort_name_for_artist,
    split_genres,
)


@pytest.mark.parametrize(
    "name",
    ["The Beatles", "Beatles, The", "the beatles ", "  THE   BEATLES", "Beatles"],
)
def test_artist_variants_share_a_key(name):
    assert normalize_artist_name(name) == "beatles"


def test_artist_punctuation_is_ignored():
    assert normalize_artist_name("AC/DC") == "acdc"
    assert normalize_artist_name("Guns N' Roses") == "guns n roses"


def test_punctuation_only_names_keep_a_key():
    assert normalize_artist_name("!!!") == "!!!"
    assert normalize_artist_name("") == ""
    assert normalize_artist_name(None) == ""


def test_parse_artists_splits_on_separators():
    assert parse_artists("Daft Punk feat. Pharrell Williams & Nile Rodgers") == [
        "Daft Punk",
        "Pharrell Williams",
        "Nile Rodgers",
    ]
    assert parse_artists("Jay-Z vs. Linkin Park") == ["Jay-Z", "Linkin Park"]
    assert parse_artists("A; B; a") == ["A", "B"]


def test_parse_artists_keeps_trailing_article():
    assert parse_artists("Beatles, The") == ["Beatles, The"]
    assert parse_artists("Beatles, The, Stones") == ["Beatles, The", "Stones"]


def test_parse_artists_drops_placeholders():
    assert parse_artists("Unknown Artist") == []
    assert parse_artists("unknown composer") == []
    assert parse_artists("") == []
    assert parse_artists(None) == []


def test_sort_name_moves_article():
    assert sort_name_for_artist("The Beatles") == "Beatles"
    assert sort_name_for_artist("Beatles, The") == "Beatles"
    assert sort_name_for_artist("Radiohead") == "Radiohead"


def test_album_titles():
    assert normalize_album_title("The Dark Side of the Moon") == "dark side of the moon"
    assert normalize_album_title("Abbey  Road - Remastered") == "abbey road remastered"
    assert normalize_album_title("Abbey Road") == normalize_album_title("abbey road ")
    assert normalize_album_title(None) == ""


def test_loose_title_matching():
    assert normalize_for_matching("Hey, Jude!") == normalize_for_matching("hey jude")
    assert normalize_for_matching("The End") == "end"


def test_split_genres():
    assert split_genres("Rock; Pop/Rock") == ["Rock", "Pop"]
    assert split_genres(None) == []
