"""Domain layer: library, playlists and pinned items."""
