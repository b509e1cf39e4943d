"""Music Catalog - local audio library cataloging and indexing engine."""

__version__ = "0.1.0"
