"""mailkeep: ingest remote mailboxes into a local SQLite archive."""

__version__ = "0.1.0"

__all__ = ["__version__"]
