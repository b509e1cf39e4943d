"""
User preferences that change how the catalog is read.

A Preferences object is created at application start (``load_preferences``),
passed explicitly to the query functions that honor it, and written back
with ``save_preferences`` on shutdown or after a change.
"""

import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from .config import get_config_dir


@dataclass(frozen=True)
class Preferences:
    """Read-side preferences for the catalog."""

    hide_duplicates: bool = False
    # View name -> (sort column, ascending)
    sort_preferences: Dict[str, tuple] = field(default_factory=dict)

    def with_hide_duplicates(self, enabled: bool) -> "Preferences":
        """Return new preferences with the duplicate toggle changed."""
        return replace(self, hide_duplicates=enabled)

    def with_sort(self, view: str, column: str, ascending: bool = True) -> "Preferences":
        """Return new preferences with the sort for one view changed."""
        sorts = dict(self.sort_preferences)
        sorts[view] = (column, ascending)
        return replace(self, sort_preferences=sorts)


def get_preferences_path() -> Path:
    """Get the preferences file path."""
    return get_config_dir() / "preferences.toml"


def load_preferences(path: Optional[Path] = None) -> Preferences:
    """Load preferences, returning defaults when the file is missing or invalid."""
    path = path or get_preferences_path()
    if not path.exists():
        return Preferences()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"Ignoring invalid preferences file {path}: {e}")
        return Preferences()

    library = data.get("library", {})
    sorts = {
        view: (entry.get("column", "title"), bool(entry.get("ascending", True)))
        for view, entry in data.get("sort", {}).items()
        if isinstance(entry, dict)
    }
    return Preferences(
        hide_duplicates=bool(library.get("hide_duplicates", False)),
        sort_preferences=sorts,
    )


def save_preferences(preferences: Preferences, path: Optional[Path] = None) -> bool:
    """Write preferences to disk."""
    path = path or get_preferences_path()

    content = "[library]\n"
    content += f"hide_duplicates = {'true' if preferences.hide_duplicates else 'false'}\n"
    for view, (column, ascending) in sorted(preferences.sort_preferences.items()):
        content += f'\n[sort."{view}"]\n'
        content += f'column = "{column}"\n'
        content += f"ascending = {'true' if ascending else 'false'}\n"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return True
    except OSError as e:
        logger.error(f"Error saving preferences to {path}: {e}")
        return False
