"""Library-changed notification channel.

Components that commit catalog changes call ``emit``; consumers register a
callback with ``subscribe``. Callbacks run synchronously on the emitting
thread, after the change has been committed.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from loguru import logger

BATCH_COMMITTED = "batch_committed"
SCAN_FINISHED = "scan_finished"
FOLDERS_CHANGED = "folders_changed"
PLAYLISTS_CHANGED = "playlists_changed"
TRACKS_CHANGED = "tracks_changed"


@dataclass(frozen=True)
class LibraryEvent:
    """A committed change to the catalog."""

    kind: str
    details: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[LibraryEvent], None]


class LibraryEvents:
    """Callback registry for library-changed events."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, kind: str, **details: Any) -> None:
        """Deliver an event to every listener.

        A failing listener is logged and does not stop delivery to the rest.
        """
        event = LibraryEvent(kind=kind, details=details)
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Library listener failed on {kind}")
