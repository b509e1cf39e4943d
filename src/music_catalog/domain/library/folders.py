"""
Watched folders and access to their files.

The catalog never opens a folder path directly; it asks a ``FolderAccess``
token for an accessible root. ``PathFolderAccess`` is the plain file-system
token; platform permission layers provide their own implementation and
serialize it into ``folders.bookmark_data``.
"""

import json
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Union

from loguru import logger

from music_catalog.core.database import get_db_connection, write_transaction
from music_catalog.core.events import FOLDERS_CHANGED, LibraryEvents
from music_catalog.core.exceptions import FolderAccessError

from .entities import cleanup_orphaned_entities, update_entity_statistics
from .models import Folder


class FolderAccess(Protocol):
    """Opaque handle that grants access to a folder."""

    def resolve(self) -> Path:
        """Return the accessible root, or raise FolderAccessError."""
        ...

    def refresh(self) -> "FolderAccess":
        """Return a renewed token for the same folder."""
        ...

    def to_bookmark(self) -> bytes:
        """Serialize the token for storage."""
        ...


@dataclass(frozen=True)
class PathFolderAccess:
    """Folder access backed by a plain, already-permitted path."""

    path: Path

    def resolve(self) -> Path:
        root = Path(self.path).expanduser()
        if not root.is_dir():
            raise FolderAccessError(f"Folder not found: {root}")
        if not os.access(root, os.R_OK | os.X_OK):
            raise FolderAccessError(f"Permission denied accessing: {root}")
        return root.resolve()

    def refresh(self) -> "PathFolderAccess":
        return PathFolderAccess(Path(self.path).expanduser().resolve())

    def to_bookmark(self) -> bytes:
        return json.dumps({"kind": "path", "path": str(self.path)}).encode("utf-8")


def access_from_bookmark(bookmark: Optional[bytes], path: str) -> FolderAccess:
    """Rebuild the access token stored for a folder.

    Folders without a readable bookmark fall back to their stored path.
    """
    if bookmark:
        try:
            data = json.loads(bytes(bookmark).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            data = {}
        if data.get("kind") == "path" and data.get("path"):
            return PathFolderAccess(Path(data["path"]))
    return PathFolderAccess(Path(path))


def folder_access(folder: Folder) -> FolderAccess:
    return access_from_bookmark(folder.bookmark_data, folder.path)


def get_folders() -> List[Folder]:
    """Get all watched folders ordered by name."""
    with get_db_connection() as conn:
        cursor = conn.execute("SELECT * FROM folders ORDER BY name COLLATE NOCASE")
        return [Folder.from_row(row) for row in cursor.fetchall()]


def get_folder(folder_id: int) -> Optional[Folder]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM folders WHERE id = ?", (folder_id,)).fetchone()
        return Folder.from_row(row) if row else None


def get_folder_by_path(path: Union[str, Path]) -> Optional[Folder]:
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT * FROM folders WHERE path = ?", (str(path),)
        ).fetchone()
        return Folder.from_row(row) if row else None


def add_folder(
    location: Union[str, Path, FolderAccess],
    events: Optional[LibraryEvents] = None,
) -> Folder:
    """Start watching a folder.

    Adding a folder that is already watched returns the existing row.

    Args:
        location: Path or access token for the folder
        events: Channel notified when a folder was added

    Returns:
        The folder

    Raises:
        FolderAccessError: If the folder cannot be accessed now
    """
    access = (
        PathFolderAccess(Path(location))
        if isinstance(location, (str, Path))
        else location
    )
    root = access.resolve()

    with write_transaction() as conn:
        existing = conn.execute(
            "SELECT * FROM folders WHERE path = ?", (str(root),)
        ).fetchone()
        if existing:
            return Folder.from_row(existing)

        cursor = conn.execute(
            """
            INSERT INTO folders (name, path, bookmark_data)
            VALUES (?, ?, ?)
            """,
            (root.name or str(root), str(root), access.to_bookmark()),
        )
        row = conn.execute(
            "SELECT * FROM folders WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()

    folder = Folder.from_row(row)
    logger.info(f"Added folder {folder.path} as #{folder.id}")
    if events:
        events.emit(FOLDERS_CHANGED, added=[folder.id])
    return folder


def remove_folder(folder_id: int, events: Optional[LibraryEvents] = None) -> bool:
    """Stop watching a folder and drop its tracks.

    Tracks go with the folder (cascade), then artists, albums and genres
    left without tracks are deleted and statistics recomputed.

    Returns:
        True if the folder was removed, False if not found
    """
    with write_transaction() as conn:
        cursor = conn.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
        if cursor.rowcount == 0:
            return False
        cleanup_orphaned_entities(conn)
        update_entity_statistics(conn)

    logger.info(f"Removed folder #{folder_id}")
    if events:
        events.emit(FOLDERS_CHANGED, removed=[folder_id])
    return True


def refresh_folder_access(folder_id: int) -> Optional[Folder]:
    """Renew and store a folder's access token.

    Returns:
        Updated folder, or None if not found

    Raises:
        FolderAccessError: If the renewed token still cannot be resolved
    """
    folder = get_folder(folder_id)
    if folder is None:
        return None

    access = folder_access(folder).refresh()
    access.resolve()

    with write_transaction() as conn:
        conn.execute(
            """
            UPDATE folders SET bookmark_data = ?, date_updated = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (access.to_bookmark(), folder_id),
        )
    return get_folder(folder_id)


def update_folder_track_count(conn: sqlite3.Connection, folder_id: int) -> int:
    """Recompute a folder's cached track count inside the caller's transaction."""
    count = conn.execute(
        "SELECT COUNT(*) FROM tracks WHERE folder_id = ?", (folder_id,)
    ).fetchone()[0]
    conn.execute(
        """
        UPDATE folders SET track_count = ?, date_updated = CURRENT_TIMESTAMP
        WHERE id = ? AND track_count != ?
        """,
        (count, folder_id, count),
    )
    return count


def update_folder_hash(
    conn: sqlite3.Connection, folder_id: int, shasum_hash: Optional[str]
) -> None:
    conn.execute(
        "UPDATE folders SET shasum_hash = ? WHERE id = ?", (shasum_hash, folder_id)
    )
