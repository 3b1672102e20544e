"""
Append-only log on top of a versioned object store.

Writes new blobs only (never updates), so a version conflict on a fresh key
means either another writer already created it or the store's branch tip
moved underneath us. The protocol per conflict:

  1. Re-read the key. If it now exists with content, a concurrent writer
     created it: done.
  2. First time the key is still missing: regenerate it with a longer
     random suffix and retry immediately.
  3. After that: retry the same key with exponential backoff until the
     attempt budget runs out, then raise LedgerWriteError.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from qatrace.lib.config import RetryPolicy
from qatrace.lib.errors import LedgerWriteError, NotFound, VersionConflict

logger = logging.getLogger(__name__)

# (extended: bool) -> store key
KeyGenerator = Callable[[bool], str]


@dataclass
class AppendResult:
    """Where an append landed."""
    path: str
    version: str
    attempts: int
    concurrent: bool = False  # the key was created by another writer


class AppendOnlyLog:
    """Create-only writes with verify-then-retry conflict handling."""

    def __init__(self, store, retry: RetryPolicy | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    def append(self, key_generator: KeyGenerator, content: str, message: str) -> AppendResult:
        """Write content under a freshly generated key.

        Raises:
            LedgerWriteError: if conflicts persist past the retry budget
            UpstreamUnavailable / StoreRequestError: propagated unchanged
        """
        path = key_generator(False)
        regenerated = False
        backoff_retries = 0
        conflicts: list[str] = []

        for attempt in range(1, self.retry.max_attempts + 1):
            try:
                version = self.store.put(path, content, message)
                if attempt > 1:
                    logger.info(f"Wrote {path} on attempt {attempt}")
                return AppendResult(path=path, version=version, attempts=attempt)
            except VersionConflict as e:
                conflicts.append(e.message)
                logger.warning(f"Version conflict writing {path} (attempt {attempt}): {e.message}")

            try:
                existing = self.store.get(path)
            except NotFound:
                existing = None

            if existing is not None and existing.content:
                logger.info(f"{path} already exists, created by a concurrent writer")
                return AppendResult(path=path, version=existing.version,
                                    attempts=attempt, concurrent=True)

            if attempt == self.retry.max_attempts:
                break

            if not regenerated:
                regenerated = True
                path = key_generator(True)
                logger.debug(f"Key missing after conflict, retrying with new key {path}")
                continue

            backoff_retries += 1
            delay = self.retry.delay_seconds(backoff_retries)
            logger.debug(f"Retrying {path} in {delay:.2f}s")
            self._sleep(delay)

        raise LedgerWriteError(
            path=path,
            attempts=self.retry.max_attempts,
            message="Version conflict persisted after retries",
            details={"conflicts": conflicts, "regenerated_key": regenerated},
        )
