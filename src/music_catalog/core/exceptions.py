"""Catalog exceptions for error handling."""


class CatalogError(Exception):
    """Base exception for catalog operations."""

    pass


class MigrationError(CatalogError):
    """Raised when a schema migration fails. The store must not be used."""

    def __init__(self, identifier: str, message: str = None):
        self.identifier = identifier
        super().__init__(message or f"Migration '{identifier}' failed")


class BatchError(CatalogError):
    """Raised when a batch write transaction was rolled back."""

    def __init__(self, paths: list, message: str = None):
        self.paths = list(paths)
        super().__init__(message or f"Batch of {len(self.paths)} files rolled back")


class EntityResolutionError(CatalogError):
    """Raised when an insert did not produce a row id."""

    pass


class FolderAccessError(CatalogError):
    """Raised when a folder access token can no longer be resolved."""

    pass


class PlaylistNotEditableError(CatalogError):
    """Raised when editing membership of a playlist that does not allow it."""

    pass


class ScanCancelled(CatalogError):
    """Raised at a batch boundary when a scan was cancelled."""

    pass
