"""Playlists domain - regular and smart playlists.

This domain handles:
- Playlist CRUD operations (create, save, rename, delete)
- Ordered membership of regular playlists
- Smart playlist criteria (AND/OR rules) and on-demand evaluation
"""

# Models
from .models import Playlist, SmartPlaylistCriteria, SmartRule

# CRUD operations
from .crud import (
    add_track_to_playlist,
    create_playlist,
    create_smart_playlist,
    delete_playlist,
    get_all_playlists,
    get_playlist,
    get_playlist_by_name,
    get_playlist_track_ids,
    get_playlist_tracks,
    move_track_in_playlist,
    remove_track_from_playlist,
    rename_playlist,
    save_playlist,
    seed_default_playlists,
)

# Smart playlists
from .smart import (
    DEFAULT_SMART_PLAYLISTS,
    VALID_FIELDS,
    build_criteria_query,
    evaluate_smart_playlist,
    validate_criteria,
    validate_rule,
)

__all__ = [
    # Models
    "Playlist",
    "SmartPlaylistCriteria",
    "SmartRule",
    # CRUD
    "add_track_to_playlist",
    "create_playlist",
    "create_smart_playlist",
    "delete_playlist",
    "get_all_playlists",
    "get_playlist",
    "get_playlist_by_name",
    "get_playlist_track_ids",
    "get_playlist_tracks",
    "move_track_in_playlist",
    "remove_track_from_playlist",
    "rename_playlist",
    "save_playlist",
    "seed_default_playlists",
    # Smart playlists
    "DEFAULT_SMART_PLAYLISTS",
    "VALID_FIELDS",
    "build_criteria_query",
    "evaluate_smart_playlist",
    "validate_criteria",
    "validate_rule",
]
