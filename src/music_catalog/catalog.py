"""
Catalog lifecycle: open at application start, close at shutdown.

``open_catalog`` loads configuration, sets up logging, migrates the store,
backfills the search index and seeds the built-in playlists, then hands
back a ``Catalog`` holding the context every component needs. Nothing here
is a process-wide singleton; callers pass the Catalog (or its parts) on.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger

from music_catalog.core.config import Config, ensure_directories, load_config
from music_catalog.core.database import init_database
from music_catalog.core.events import LibraryEvents
from music_catalog.core.logging import setup_logging_from_config
from music_catalog.core.preferences import Preferences, load_preferences, save_preferences
from music_catalog.domain.library.duplicates import refresh_duplicates
from music_catalog.domain.library.metadata import MetadataExtractor, extract_track_metadata
from music_catalog.domain.library.scanner import CancellationToken, ScanResult, scan_folders
from music_catalog.domain.library.search import rebuild_search_index
from music_catalog.domain.playlists.crud import seed_default_playlists


@dataclass
class Catalog:
    """Explicit application context for the catalog engine."""

    config: Config
    preferences: Preferences
    events: LibraryEvents = field(default_factory=LibraryEvents)
    preferences_path: Optional[Path] = None

    def set_hide_duplicates(self, enabled: bool) -> None:
        """Toggle the hide-duplicates preference. Takes effect on the next read."""
        self.preferences = self.preferences.with_hide_duplicates(enabled)

    def scan(
        self,
        folder_ids: Optional[Sequence[int]] = None,
        extractor: MetadataExtractor = extract_track_metadata,
        cancel: Optional[CancellationToken] = None,
        skip_unchanged: bool = False,
    ) -> List[ScanResult]:
        """Scan folders with this catalog's configuration and event channel."""
        return scan_folders(
            folder_ids,
            extractor=extractor,
            config=self.config,
            events=self.events,
            cancel=cancel,
            skip_unchanged=skip_unchanged,
        )

    def refresh_duplicates(self) -> int:
        """Recompute duplicate flags, e.g. after the duplicate settings changed."""
        return refresh_duplicates(self.config.duplicates)


def open_catalog(
    config_path: Optional[Path] = None,
    preferences_path: Optional[Path] = None,
    configure_logging: bool = True,
) -> Catalog:
    """Prepare the catalog for use.

    Raises:
        MigrationError: If the schema could not be brought up to date
    """
    config = load_config(config_path)
    ensure_directories()
    if configure_logging:
        setup_logging_from_config(config.logging)

    applied = init_database()
    if applied:
        logger.info(f"Applied migrations: {', '.join(applied)}")

    rebuild_search_index()
    seed_default_playlists()

    return Catalog(
        config=config,
        preferences=load_preferences(preferences_path),
        preferences_path=preferences_path,
    )


def close_catalog(catalog: Catalog) -> None:
    """Persist preferences at shutdown."""
    if not save_preferences(catalog.preferences, catalog.preferences_path):
        logger.warning("Preferences were not saved")
