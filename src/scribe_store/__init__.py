"""
Scribe Store - the storage and query engine behind the Scribe note-taking app.
This package keeps notes, folders and derived tags on one of three
interchangeable backends (key-value, file tree, relational) and adds optional
per-note encryption at rest.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("scribe-store")
except PackageNotFoundError:
    __version__ = "0.3.0"
