"""Pinned items domain - user-ordered shortcuts to filters, entities and playlists."""

from .store import (
    PinnedItem,
    get_pinned_items,
    get_tracks_for_pinned_item,
    is_item_pinned,
    pin_entity,
    pin_library_filter,
    pin_playlist,
    remove_pinned_items_for_playlist,
    remove_pinned_items_matching,
    reorder_pinned_items,
    unpin_item,
)

__all__ = [
    "PinnedItem",
    "get_pinned_items",
    "get_tracks_for_pinned_item",
    "is_item_pinned",
    "pin_entity",
    "pin_library_filter",
    "pin_playlist",
    "remove_pinned_items_for_playlist",
    "remove_pinned_items_matching",
    "reorder_pinned_items",
    "unpin_item",
]
