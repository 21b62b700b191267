"""Data models for the Scribe note store."""
