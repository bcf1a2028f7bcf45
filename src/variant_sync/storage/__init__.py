"""SQLite-backed storage helpers."""
