"""SQLite storage for dividend entries, depots, groups, currencies and an audit log."""

__version__ = "0.1.0"