#!/usr/bin/env python3
"""Tests for schema migrations and the migration ledger."""

import sqlite3

import pytest

from music_catalog.core import migrations
from music_catalog.core.database import get_database_path, get_db_connection, init_database
from music_catalog.core.exceptions import MigrationError


def _identifiers():
    return [identifier for identifier, _ in migrations.MIGRATIONS]


def test_fresh_store_applies_every_migration_in_order(tmp_path, monkeypatch):
    """A new store runs all migrations once and records them in order."""
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    applied = init_database()

    assert applied == _identifiers()
    with get_db_connection() as conn:
        assert migrations.applied_migrations(conn) == _identifiers()


def test_second_open_applies_nothing(catalog_db):
    """Re-running migrations against an up-to-date store is a no-op."""
    assert init_database() == []


def test_schema_has_core_tables(catalog_db):
    with get_db_connection() as conn:
        names = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
    for table in (
        "folders", "tracks", "artists", "albums", "genres", "track_artists",
        "album_artists", "track_genres", "playlists", "playlist_tracks",
        "pinned_items", "schema_migrations",
    ):
        assert table in names, f"missing table {table}"


def test_store_uses_write_ahead_log(catalog_db):
    with get_db_connection() as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"


def test_failed_migration_is_rolled_back_and_raises(tmp_path, monkeypatch):
    """A failing migration leaves no ledger row and surfaces MigrationError."""
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    def broken(conn):
        conn.execute("CREATE TABLE half_done (id INTEGER)")
        raise sqlite3.OperationalError("boom")

    monkeypatch.setattr(
        migrations, "MIGRATIONS", migrations.MIGRATIONS + [("v99_broken", broken)]
    )

    with pytest.raises(MigrationError) as excinfo:
        init_database()

    assert excinfo.value.identifier == "v99_broken"
    with get_db_connection() as conn:
        assert "v99_broken" not in migrations.applied_migrations(conn)
        assert not migrations._table_exists(conn, "half_done")
        # Earlier migrations stay applied
        assert "v1_initial_schema" in migrations.applied_migrations(conn)


def test_search_index_backfilled_for_existing_tracks(tmp_path, monkeypatch):
    """Tracks written before the index existed are indexed by the migration."""
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    monkeypatch.setattr(
        migrations,
        "MIGRATIONS",
        [m for m in migrations.MIGRATIONS if m[0] != "v4_add_search_index"],
    )
    init_database()
    with get_db_connection() as conn:
        conn.execute("INSERT INTO folders (name, path) VALUES ('m', '/m')")
        conn.execute(
            "INSERT INTO tracks (folder_id, path, filename, title) VALUES (1, '/m/a.mp3', 'a.mp3', 'Yesterday')"
        )
        conn.commit()

    monkeypatch.undo()
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    applied = init_database()

    assert applied == ["v4_add_search_index"]
    with get_db_connection() as conn:
        if not migrations.search_index_available(conn):
            pytest.skip("SQLite built without FTS5")
        rows = conn.execute(
            "SELECT rowid FROM tracks_fts WHERE tracks_fts MATCH 'yesterday'"
        ).fetchall()
    assert [row[0] for row in rows] == [1]


def test_store_without_ledger_is_adopted_as_baseline(tmp_path, monkeypatch):
    """A catalog created before the ledger existed keeps its rows and gets the later migrations."""
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    db_path = get_database_path()
    db_path.parent.mkdir(parents=True)
    legacy = sqlite3.connect(db_path)
    legacy.executescript("""
        CREATE TABLE folders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            path TEXT NOT NULL UNIQUE
        );
        CREATE TABLE tracks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            folder_id INTEGER NOT NULL,
            path TEXT NOT NULL UNIQUE,
            filename TEXT NOT NULL,
            title TEXT, artist TEXT, album TEXT, album_artist TEXT,
            composer TEXT, genre TEXT, year TEXT
        );
        INSERT INTO folders (name, path) VALUES ('m', '/m');
        INSERT INTO tracks (folder_id, path, filename, title, artist)
        VALUES (1, '/m/a.mp3', 'a.mp3', 'Penny Lane', 'The Beatles');
    """)
    legacy.commit()
    legacy.close()

    applied = init_database()

    assert applied == _identifiers()
    with get_db_connection() as conn:
        assert migrations.applied_migrations(conn)[0] == "v1_initial_schema"
        row = conn.execute("SELECT path, title, artist, is_duplicate FROM tracks").fetchone()
        assert tuple(row) == ("/m/a.mp3", "Penny Lane", "The Beatles", 0)
        folder_columns = {r["name"] for r in conn.execute("PRAGMA table_info(folders)")}
        assert "shasum_hash" in folder_columns
        # The baseline leaves the legacy schema alone
        assert "track_count" not in folder_columns
        if migrations.search_index_available(conn):
            hits = conn.execute(
                "SELECT rowid FROM tracks_fts WHERE tracks_fts MATCH 'penny'"
            ).fetchall()
            assert [hit[0] for hit in hits] == [1]


def test_populate_search_index_is_noop_when_filled(catalog_db):
    with get_db_connection() as conn:
        if not migrations.search_index_available(conn):
            pytest.skip("SQLite built without FTS5")
        conn.execute("INSERT INTO folders (name, path) VALUES ('m', '/m')")
        conn.execute(
            "INSERT INTO tracks (folder_id, path, filename, title) VALUES (1, '/m/a.mp3', 'a.mp3', 'Help')"
        )
        assert migrations.populate_search_index(conn) == 0
        migrations.populate_search_index(conn, force=True)
        assert conn.execute("SELECT COUNT(*) FROM tracks_fts").fetchone()[0] == 1


def test_database_lives_in_data_dir(catalog_db):
    assert get_database_path().exists()
    assert get_database_path().parent.name == "music-catalog"
