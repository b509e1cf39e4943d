"""
Folder scanning and reconciliation.

A scan walks a folder, compares what it finds with the tracks already
cataloged for that folder, and only sends new or modified files to the
batch processor. Tracks whose files disappeared are deleted once all
batches have run, together with the folder's track count recompute.
Scanning an unchanged folder therefore writes nothing.
"""

import hashlib
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from loguru import logger

from music_catalog.core.config import Config
from music_catalog.core.database import get_db_connection, write_transaction
from music_catalog.core.events import SCAN_FINISHED, LibraryEvents
from music_catalog.core.exceptions import BatchError, FolderAccessError, ScanCancelled

from .batch import BatchItem, file_modified_at, is_modified, process_batch
from .duplicates import detect_duplicates
from .entities import update_entity_statistics
from .folders import (
    folder_access,
    get_folder,
    get_folders,
    update_folder_hash,
    update_folder_track_count,
)
from .metadata import MetadataExtractor, extract_track_metadata
from .models import Folder

# Directories that look like single files to the user
PACKAGE_SUFFIXES = {
    ".app",
    ".bundle",
    ".framework",
    ".pkg",
    ".plugin",
    ".kext",
    ".photoslibrary",
    ".musiclibrary",
    ".logicx",
    ".band",
}


@dataclass
class ScanResult:
    """Outcome of scanning one folder."""

    folder_id: int
    discovered: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    failed: List[str] = field(default_factory=list)
    failed_batches: int = 0
    unchanged_folder: bool = False  # Skipped via content hash
    access_denied: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.new or self.updated or self.removed)


class CancellationToken:
    """Lets another thread stop a scan at the next batch boundary."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_supported_format(path: Path, supported_formats: Sequence[str]) -> bool:
    """Check if file format is supported."""
    return path.suffix.lower() in {f.lower() for f in supported_formats}


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def _is_package(name: str) -> bool:
    return Path(name).suffix.lower() in PACKAGE_SUFFIXES


def discover_audio_files(root: Path, supported_formats: Sequence[str]) -> List[Path]:
    """Recursively list supported audio files under root.

    Hidden files and directories and package-like directories are skipped.
    """
    formats = {f.lower() for f in supported_formats}
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        # Prune in place so os.walk does not descend
        dirnames[:] = [
            d for d in dirnames if not _is_hidden(d) and not _is_package(d)
        ]
        for filename in filenames:
            if _is_hidden(filename):
                continue
            path = Path(dirpath) / filename
            if path.suffix.lower() in formats and path.is_file():
                found.append(path)
    found.sort()
    return found


def compute_folder_hash(root: Path, files: Iterable[Path]) -> str:
    """Fingerprint a folder's audio files from their paths, sizes and mtimes."""
    digest = hashlib.sha256()
    for path in sorted(files):
        try:
            stat_result = path.stat()
        except OSError:
            continue
        relative = path.relative_to(root).as_posix()
        digest.update(f"{relative}\0{stat_result.st_size}\0{stat_result.st_mtime_ns}\n".encode("utf-8"))
    return digest.hexdigest()


def _known_tracks(folder_id: int) -> dict:
    with get_db_connection() as conn:
        cursor = conn.execute(
            "SELECT path, date_modified FROM tracks WHERE folder_id = ?", (folder_id,)
        )
        return {row["path"]: row["date_modified"] for row in cursor.fetchall()}


def _chunks(items: List[BatchItem], size: int) -> Iterable[List[BatchItem]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _scan_one(
    folder: Folder,
    extractor: MetadataExtractor,
    config: Config,
    events: Optional[LibraryEvents],
    cancel: Optional[CancellationToken],
    skip_unchanged: bool,
) -> ScanResult:
    result = ScanResult(folder_id=folder.id)

    try:
        root = folder_access(folder).resolve()
    except FolderAccessError as e:
        # Keep the folder and its tracks; try again next scan
        logger.warning(f"Skipping folder {folder.path}: {e}")
        result.access_denied = True
        return result

    files = discover_audio_files(root, config.library.supported_formats)
    result.discovered = len(files)
    folder_hash = compute_folder_hash(root, files)

    if skip_unchanged and folder.shasum_hash == folder_hash:
        logger.debug(f"Folder unchanged, skipping scan: {folder.path}")
        result.unchanged_folder = True
        return result

    known = _known_tracks(folder.id)
    discovered_paths = set()
    work: List[BatchItem] = []
    for path in files:
        path_str = str(path)
        discovered_paths.add(path_str)
        if path_str in known:
            try:
                modified_at = file_modified_at(path.stat())
            except OSError as e:
                logger.warning(f"Cannot stat {path_str}: {e}")
                result.failed.append(path_str)
                continue
            if not is_modified(modified_at, known[path_str]):
                result.skipped += 1
                continue
        work.append((path_str, folder.id))

    removed = [path for path in known if path not in discovered_paths]

    library = config.library
    batch_size = (
        library.large_batch_size
        if len(files) > library.large_folder_threshold
        else library.batch_size
    )

    for batch in _chunks(work, batch_size):
        if cancel is not None and cancel.cancelled:
            raise ScanCancelled(f"Scan of {folder.path} cancelled")
        try:
            batch_result = process_batch(batch, extractor, library, events)
        except BatchError as e:
            logger.error(f"Batch failed in {folder.path}, continuing: {e}")
            result.failed_batches += 1
            result.failed.extend(e.paths)
            continue
        result.new += batch_result.new
        result.updated += batch_result.updated
        result.skipped += batch_result.skipped
        result.failed.extend(batch_result.failed)

    with write_transaction() as conn:
        if removed:
            conn.executemany(
                "DELETE FROM tracks WHERE path = ? AND folder_id = ?",
                [(path, folder.id) for path in removed],
            )
            update_entity_statistics(conn)
            result.removed = len(removed)
        update_folder_track_count(conn, folder.id)
        # A partial scan must not be remembered as complete
        if not result.failed and not result.failed_batches and folder.shasum_hash != folder_hash:
            update_folder_hash(conn, folder.id, folder_hash)

    logger.info(
        f"Scanned {folder.path}: {result.discovered} files, {result.new} new, "
        f"{result.updated} updated, {result.removed} removed, {result.skipped} unchanged"
    )
    return result


def scan_folders(
    folder_ids: Optional[Sequence[int]] = None,
    extractor: MetadataExtractor = extract_track_metadata,
    config: Optional[Config] = None,
    events: Optional[LibraryEvents] = None,
    cancel: Optional[CancellationToken] = None,
    skip_unchanged: bool = False,
) -> List[ScanResult]:
    """Scan folders and reconcile the catalog with their contents.

    Args:
        folder_ids: Folders to scan (default: all watched folders)
        extractor: Metadata source for new and modified files
        config: Application configuration
        events: Channel notified per committed batch and once per scan
        cancel: Token checked before every batch
        skip_unchanged: Skip folders whose content hash has not changed

    Returns:
        One result per scanned folder

    Raises:
        ScanCancelled: If the token was cancelled; committed batches stay
    """
    config = config or Config()

    if folder_ids is None:
        folders = get_folders()
    else:
        folders = [f for f in (get_folder(fid) for fid in folder_ids) if f is not None]

    results = [
        _scan_one(folder, extractor, config, events, cancel, skip_unchanged)
        for folder in folders
    ]

    if any(r.changed for r in results):
        with write_transaction() as conn:
            detect_duplicates(conn, config.duplicates)

    if events:
        events.emit(
            SCAN_FINISHED,
            folder_ids=[r.folder_id for r in results],
            changed=any(r.changed for r in results),
        )
    return results


def scan_folder(
    folder_id: int,
    extractor: MetadataExtractor = extract_track_metadata,
    config: Optional[Config] = None,
    events: Optional[LibraryEvents] = None,
    cancel: Optional[CancellationToken] = None,
    skip_unchanged: bool = False,
) -> ScanResult:
    """Scan a single folder. See scan_folders."""
    results = scan_folders([folder_id], extractor, config, events, cancel, skip_unchanged)
    if not results:
        raise ValueError(f"Folder {folder_id} not found")
    return results[0]
