"""Library domain - folders, tracks and the entities they resolve to.

This domain handles:
- Track and entity data models
- Metadata extraction from audio files
- Artist/album/genre resolution and merge rules
- Folder scanning and batch processing
- Duplicate detection
- Full-text search and filter queries
"""

# Models
from .models import Album, Artist, FilterItem, Folder, Track, TrackMetadata

# Metadata extraction
from .metadata import (
    MetadataExtractor,
    extract_metadata_from_filename,
    extract_track_metadata,
)

# Folders
from .folders import (
    FolderAccess,
    PathFolderAccess,
    add_folder,
    get_folder,
    get_folders,
    refresh_folder_access,
    remove_folder,
)

# Scanning
from .batch import BatchResult, process_batch
from .scanner import (
    CancellationToken,
    ScanResult,
    compute_folder_hash,
    discover_audio_files,
    scan_folder,
    scan_folders,
)

# Duplicates
from .duplicates import detect_duplicates, refresh_duplicates

# Search and queries
from .search import (
    rebuild_search_index,
    search_tracks,
    search_tracks_for_playlist,
)
from .queries import (
    apply_duplicate_filter,
    get_album_count,
    get_album_entities,
    get_all_tracks,
    get_artist_count,
    get_artist_entities,
    get_distinct_values,
    get_filter_items_with_counts,
    get_total_track_count,
    get_track_by_id,
    get_track_by_path,
    get_tracks_by_filter_value,
    get_tracks_by_filter_value_containing,
    get_tracks_for_album_id,
    get_tracks_for_artist_id,
    get_tracks_for_folder,
)

# Track state
from .tracks import record_track_played, set_track_favorite, set_track_rating

__all__ = [
    # Models
    "Album",
    "Artist",
    "FilterItem",
    "Folder",
    "Track",
    "TrackMetadata",
    # Metadata
    "MetadataExtractor",
    "extract_metadata_from_filename",
    "extract_track_metadata",
    # Folders
    "FolderAccess",
    "PathFolderAccess",
    "add_folder",
    "get_folder",
    "get_folders",
    "refresh_folder_access",
    "remove_folder",
    # Scanning
    "BatchResult",
    "process_batch",
    "CancellationToken",
    "ScanResult",
    "compute_folder_hash",
    "discover_audio_files",
    "scan_folder",
    "scan_folders",
    # Duplicates
    "detect_duplicates",
    "refresh_duplicates",
    # Search and queries
    "rebuild_search_index",
    "search_tracks",
    "search_tracks_for_playlist",
    "apply_duplicate_filter",
    "get_album_count",
    "get_album_entities",
    "get_all_tracks",
    "get_artist_count",
    "get_artist_entities",
    "get_distinct_values",
    "get_filter_items_with_counts",
    "get_total_track_count",
    "get_track_by_id",
    "get_track_by_path",
    "get_tracks_by_filter_value",
    "get_tracks_by_filter_value_containing",
    "get_tracks_for_album_id",
    "get_tracks_for_artist_id",
    "get_tracks_for_folder",
    # Track state
    "record_track_played",
    "set_track_favorite",
    "set_track_rating",
]
