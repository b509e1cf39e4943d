"""Shared fixtures: an isolated catalog store and a fake metadata source."""

import os
from pathlib import Path
from typing import Dict, Optional

import pytest

from music_catalog.core.database import get_db_connection, init_database
from music_catalog.domain.library.models import TrackMetadata


@pytest.fixture
def catalog_db(tmp_path, monkeypatch):
    """Point config and data directories at tmp_path and migrate a fresh store."""
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    init_database()
    yield tmp_path


class FakeExtractor:
    """Metadata source keyed by file name. Unknown files get their stem as title."""

    def __init__(self, tags: Optional[Dict[str, TrackMetadata]] = None):
        self.tags = dict(tags or {})
        self.calls = []

    def __call__(self, path: str) -> TrackMetadata:
        self.calls.append(path)
        name = Path(path).name
        if name in self.tags:
            return self.tags[name]
        return TrackMetadata(title=Path(path).stem, duration=180.0)


@pytest.fixture
def extractor():
    return FakeExtractor()


def make_audio_file(folder: Path, name: str, mtime: Optional[float] = None) -> Path:
    """Create an (empty) audio file, optionally with a fixed modification time."""
    path = folder / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def touch_later(path: Path, seconds: float = 60.0) -> None:
    """Move a file's modification time forward so a rescan sees it as modified."""
    stat_result = path.stat()
    later = stat_result.st_mtime + seconds
    os.utime(path, (later, later))


def insert_track(conn, folder_id: int, path: str, **columns) -> int:
    """Insert a bare track row for query tests."""
    values = {
        "folder_id": folder_id,
        "path": path,
        "filename": Path(path).name,
        "title": Path(path).stem,
        "duration": 200.0,
        **columns,
    }
    names = ", ".join(values)
    marks = ", ".join("?" for _ in values)
    cursor = conn.execute(f"INSERT INTO tracks ({names}) VALUES ({marks})", list(values.values()))
    return cursor.lastrowid


def insert_folder(conn, path: str = "/music") -> int:
    cursor = conn.execute(
        "INSERT INTO folders (name, path) VALUES (?, ?)", (Path(path).name, path)
    )
    return cursor.lastrowid


def count_rows(table: str) -> int:
    with get_db_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
