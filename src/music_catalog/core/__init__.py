"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Database access and schema migrations (SQLite)
- Logging (loguru)
- Read preferences and the library-changed event channel

Clean architecture principle: The core layer has no dependencies on
the domain layer.
"""

# Configuration
from .config import (
    Config,
    DuplicatesConfig,
    LibraryConfig,
    LoggingConfig,
    SearchConfig,
    create_default_config,
    ensure_directories,
    get_config_dir,
    get_config_path,
    get_data_dir,
    load_config,
    save_config,
)

# Database
from .database import (
    get_database_path,
    get_db_connection,
    init_database,
    placeholders,
    write_transaction,
)

# Events
from .events import (
    BATCH_COMMITTED,
    FOLDERS_CHANGED,
    PLAYLISTS_CHANGED,
    SCAN_FINISHED,
    TRACKS_CHANGED,
    LibraryEvent,
    LibraryEvents,
)

# Exceptions
from .exceptions import (
    BatchError,
    CatalogError,
    EntityResolutionError,
    FolderAccessError,
    MigrationError,
    PlaylistNotEditableError,
    ScanCancelled,
)

# Logging
from .logging import setup_logging, setup_logging_from_config

# Preferences
from .preferences import Preferences, load_preferences, save_preferences

__all__ = [
    # Configuration
    "Config",
    "DuplicatesConfig",
    "LibraryConfig",
    "LoggingConfig",
    "SearchConfig",
    "create_default_config",
    "ensure_directories",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "load_config",
    "save_config",
    # Database
    "get_database_path",
    "get_db_connection",
    "init_database",
    "placeholders",
    "write_transaction",
    # Events
    "BATCH_COMMITTED",
    "FOLDERS_CHANGED",
    "PLAYLISTS_CHANGED",
    "SCAN_FINISHED",
    "TRACKS_CHANGED",
    "LibraryEvent",
    "LibraryEvents",
    # Exceptions
    "BatchError",
    "CatalogError",
    "EntityResolutionError",
    "FolderAccessError",
    "MigrationError",
    "PlaylistNotEditableError",
    "ScanCancelled",
    # Logging
    "setup_logging",
    "setup_logging_from_config",
    # Preferences
    "Preferences",
    "load_preferences",
    "save_preferences",
]
