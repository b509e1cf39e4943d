"""
Batch processing of new and changed files.

A batch runs in two phases. Metadata is first extracted concurrently,
outside any transaction. All catalog writes for the batch (track rows,
artist/album/genre links, statistics) are then applied in one write
transaction: the whole batch commits or nothing does.
"""

import os
import sqlite3
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from music_catalog.core.config import LibraryConfig
from music_catalog.core.database import get_db_connection, placeholders, write_transaction
from music_catalog.core.events import BATCH_COMMITTED, LibraryEvents
from music_catalog.core.exceptions import BatchError, EntityResolutionError

from .entities import rebuild_track_relationships, update_entity_statistics
from .merge import columns_to_metadata, compute_track_changes, is_present, metadata_to_columns
from .metadata import MetadataExtractor, extract_track_metadata
from .models import TRACK_PLACEHOLDERS, TrackMetadata

# Changing any of these re-links the track to its entities
RELATIONSHIP_FIELDS = {
    "artist",
    "composer",
    "album_artist",
    "genre",
    "album",
    "year",
    "release_date",
    "total_discs",
    "artwork_data",
    "extended_metadata",
}

# (file path, folder id)
BatchItem = Tuple[str, int]


@dataclass
class BatchResult:
    """Outcome of one committed batch."""

    new: int = 0
    updated: int = 0
    skipped: int = 0
    failed: List[str] = field(default_factory=list)
    track_ids: List[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.new or self.updated)


@dataclass
class _PendingFile:
    path: str
    folder_id: int
    modified_at: str
    file_size: int
    existing: Optional[sqlite3.Row]
    metadata: Optional[TrackMetadata] = None


def file_modified_at(stat_result: os.stat_result) -> str:
    """Format a file's mtime the way tracks.date_modified stores it (UTC, sortable)."""
    moment = datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S.%f")


def is_modified(modified_at: str, stored: Optional[str]) -> bool:
    """True when the file changed after the stored modification time."""
    return stored is None or modified_at > stored


def _load_existing(paths: Sequence[str]) -> Dict[str, sqlite3.Row]:
    if not paths:
        return {}
    with get_db_connection() as conn:
        cursor = conn.execute(
            f"SELECT * FROM tracks WHERE path IN ({placeholders(len(paths))})",
            list(paths),
        )
        return {row["path"]: row for row in cursor.fetchall()}


def _classify(items: Sequence[BatchItem], result: BatchResult) -> List[_PendingFile]:
    """Stat every file and keep those that need extraction."""
    existing = _load_existing([path for path, _ in items])
    pending = []
    for path, folder_id in items:
        try:
            stat_result = os.stat(path)
        except OSError as e:
            logger.warning(f"Cannot stat {path}: {e}")
            result.failed.append(path)
            continue

        modified_at = file_modified_at(stat_result)
        row = existing.get(path)
        if row is not None and not is_modified(modified_at, row["date_modified"]):
            result.skipped += 1
            continue

        pending.append(
            _PendingFile(path, folder_id, modified_at, stat_result.st_size, row)
        )
    return pending


def extract_concurrently(
    pending: List[_PendingFile],
    extractor: MetadataExtractor,
    timeout: float,
    max_workers: Optional[int] = None,
) -> List[str]:
    """Fill in metadata for pending files using a worker pool.

    The batch shares one deadline: ``timeout`` seconds per round of
    workers, which is a single ``timeout`` when every file has a worker.
    Hung extractors therefore cannot stretch a batch beyond it. Files that
    fail or are still running at the deadline keep ``metadata = None``.

    Returns:
        Paths whose extraction failed or timed out
    """
    if not pending:
        return []

    failed = []
    workers = max(1, min(len(pending), max_workers or len(pending)))
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="catalog-extract")
    try:
        futures = [(item, pool.submit(extractor, item.path)) for item in pending]
        rounds = -(-len(pending) // workers)
        done, _ = wait([future for _, future in futures], timeout=timeout * rounds)
        for item, future in futures:
            if future not in done:
                future.cancel()
                logger.warning(f"Metadata extraction timed out after {timeout}s: {item.path}")
                failed.append(item.path)
                continue
            try:
                item.metadata = future.result()
            except Exception as e:
                logger.warning(f"Metadata extraction failed for {item.path}: {e}")
                failed.append(item.path)
    finally:
        # Never block on a hung extractor
        pool.shutdown(wait=False, cancel_futures=True)
    return failed


def _insert_track(conn: sqlite3.Connection, item: _PendingFile) -> int:
    columns = metadata_to_columns(item.metadata)
    path = Path(item.path)
    if not is_present(columns["title"]):
        columns["title"] = path.stem
    for column, placeholder in TRACK_PLACEHOLDERS.items():
        if not is_present(columns[column]):
            columns[column] = placeholder
    columns.update(
        folder_id=item.folder_id,
        path=item.path,
        filename=path.name,
        format=path.suffix.lower().lstrip("."),
        file_size=item.file_size,
        date_modified=item.modified_at,
    )
    names = ", ".join(columns)
    cursor = conn.execute(
        f"INSERT INTO tracks ({names}) VALUES ({placeholders(len(columns))})",
        list(columns.values()),
    )
    if not cursor.lastrowid:
        raise EntityResolutionError(f"Insert into tracks returned no row id for {item.path}")
    return cursor.lastrowid


def _update_track(conn: sqlite3.Connection, item: _PendingFile, current: sqlite3.Row) -> dict:
    """Apply merge rules to an existing row. Returns the metadata columns that changed."""
    changes = compute_track_changes(current, item.metadata)
    bookkeeping = {"date_modified": item.modified_at, "file_size": item.file_size}
    assignments = {**changes, **bookkeeping}
    sql_set = ", ".join(f"{column} = ?" for column in assignments)
    conn.execute(
        f"UPDATE tracks SET {sql_set} WHERE id = ?",
        (*assignments.values(), current["id"]),
    )
    return changes


def _write_batch(conn: sqlite3.Connection, pending: List[_PendingFile], result: BatchResult) -> None:
    for item in pending:
        if item.metadata is None:
            continue

        current = item.existing
        relink = False
        linked_metadata = item.metadata
        if current is None:
            try:
                track_id = _insert_track(conn, item)
                result.new += 1
                relink = True
            except sqlite3.IntegrityError:
                # Path inserted meanwhile: treat as already present
                current = conn.execute(
                    "SELECT * FROM tracks WHERE path = ?", (item.path,)
                ).fetchone()
                if current is None:
                    raise
            except EntityResolutionError as e:
                logger.error(str(e))
                result.failed.append(item.path)
                continue

        if current is not None:
            track_id = current["id"]
            changes = _update_track(conn, item, current)
            if changes:
                result.updated += 1
                relink = bool(RELATIONSHIP_FIELDS & changes.keys())
                # Link what the row now holds; merge rules may have kept stored values
                linked_metadata = columns_to_metadata({**dict(current), **changes})
            else:
                result.skipped += 1

        result.track_ids.append(track_id)
        if relink:
            try:
                rebuild_track_relationships(conn, track_id, linked_metadata)
            except EntityResolutionError as e:
                logger.error(f"Skipping relationships for {item.path}: {e}")

    update_entity_statistics(conn)


def process_batch(
    items: Sequence[BatchItem],
    extractor: MetadataExtractor = extract_track_metadata,
    config: Optional[LibraryConfig] = None,
    events: Optional[LibraryEvents] = None,
) -> BatchResult:
    """Extract and store one batch of files.

    Args:
        items: (path, folder id) pairs, at most one batch worth
        extractor: Metadata source, called concurrently
        config: Library settings (timeout and worker bounds)
        events: Channel notified after the batch commits with changes

    Returns:
        Counts of new, updated and skipped files plus failed paths

    Raises:
        BatchError: If the write transaction failed; nothing was stored
    """
    config = config or LibraryConfig()
    result = BatchResult()

    pending = _classify(items, result)
    failed = extract_concurrently(
        pending,
        extractor,
        timeout=config.extraction_timeout,
        max_workers=config.max_workers,
    )
    result.failed.extend(failed)
    result.skipped += len(failed)

    to_write = [item for item in pending if item.metadata is not None]
    if not to_write:
        return result

    try:
        with write_transaction() as conn:
            _write_batch(conn, to_write, result)
    except Exception as e:
        logger.error(f"Batch of {len(to_write)} files rolled back: {e}")
        raise BatchError([item.path for item in to_write]) from e

    logger.debug(
        f"Batch committed: {result.new} new, {result.updated} updated, {result.skipped} skipped"
    )
    if events and result.changed:
        events.emit(
            BATCH_COMMITTED,
            track_ids=list(result.track_ids),
            new=result.new,
            updated=result.updated,
        )
    return result
