"""
Error taxonomy for the object store and the execution ledger.

Store errors describe what happened to a single request. The ledger turns
unresolved store errors into LedgerWriteError with enough detail to
diagnose the failed write.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class StoreError(Exception):
    """An object store request failed."""
    path: str
    message: str

    def __str__(self):
        return f"{self.path}: {self.message}"


@dataclass
class NotFound(StoreError):
    """The object (or directory) does not exist."""


@dataclass
class VersionConflict(StoreError):
    """The expected version did not match the stored version."""


@dataclass
class UpstreamUnavailable(StoreError):
    """Network failure, timeout or 5xx. Safe to retry."""


@dataclass
class StoreRequestError(StoreError):
    """The store rejected the request (4xx other than 404/409)."""
    status: Optional[int] = None


@dataclass
class MalformedRecord(Exception):
    """A run or pointer payload does not have the expected shape."""
    path: str
    reason: str

    def __str__(self):
        return f"Malformed record {self.path}: {self.reason}"


@dataclass
class LedgerWriteError(Exception):
    """A run record could not be written after the retry budget."""
    path: str
    attempts: int
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self):
        return f"Failed to write {self.path} after {self.attempts} attempt(s): {self.message}"
