"""
Shared data types for object store clients.

Both the GitHub-backed store and the in-memory store return these, so the
ledger never depends on a particular backend.
"""

from dataclasses import dataclass


@dataclass
class StoredObject:
    """A blob read from the store."""
    path: str
    content: str
    version: str  # blob sha


@dataclass
class DirEntry:
    """One entry of a directory listing."""
    name: str
    path: str
    type: str  # "file" or "dir"
    version: str | None = None
