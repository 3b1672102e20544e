"""
Latest-run index maintenance.

Each run directory may hold a latest.json pointer to its newest run. The
pointer is only a hint: run writes never touch it, so every read falls back
to scanning the directory when the pointer is missing or unreadable, and
deleting a run rebuilds it from the remaining records.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from qatrace.lib.constants import DEFAULT_RUNS_LIMIT, DEFAULT_RUNS_ROOT, MAX_RUNS_LIMIT
from qatrace.lib.errors import MalformedRecord, NotFound, StoreError, VersionConflict
from qatrace.ledger.keys import (
    latest_path_for,
    parse_run_filename,
    run_dir_for,
    run_sort_key,
    split_run_path,
    test_path_for_run_dir,
)
from qatrace.ledger.models import (
    LatestPointer,
    RunRecord,
    decode_pointer,
    decode_run,
    encode_payload,
)

logger = logging.getLogger(__name__)

POINTER_WRITE_ATTEMPTS = 3


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class RunScan:
    """Runs of one test, newest first, plus entries that failed to decode."""
    runs: list[RunRecord] = field(default_factory=list)
    malformed: list[MalformedRecord] = field(default_factory=list)


@dataclass
class SnapshotLatest:
    """Latest result per test from a tree snapshot, plus runs that failed to decode."""
    latest: dict[str, LatestPointer] = field(default_factory=dict)
    malformed: list[MalformedRecord] = field(default_factory=list)


@dataclass
class RebuildResult:
    """What a pointer rebuild did."""
    action: str  # "written", "deleted", "absent"
    pointer: Optional[LatestPointer] = None


@dataclass
class BackfillReport:
    """Summary of a pointer backfill over every run directory."""
    total_directories: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False
    details: list[dict] = field(default_factory=list)


class LatestIndex:
    """Reads and repairs per-test latest.json pointers."""

    def __init__(self, store, runs_root: str = DEFAULT_RUNS_ROOT,
                 now: Callable[[], str] = utc_now_iso):
        self.store = store
        self.runs_root = runs_root
        self._now = now

    # --- reads ---

    def _run_files(self, run_dir: str) -> list[str]:
        """Run filenames in a directory, newest first. Empty if missing."""
        try:
            entries = self.store.list_directory(run_dir)
        except NotFound:
            return []
        names = [e.name for e in entries if e.type == "file" and parse_run_filename(e.name)]
        return sorted(names, key=run_sort_key, reverse=True)

    def _read_run(self, run_path: str) -> RunRecord:
        obj = self.store.get(run_path)
        return decode_run(obj.content, run_path)

    def read_pointer(self, test_path: str) -> Optional[LatestPointer]:
        """Read latest.json, or None if absent or unreadable."""
        pointer_path = latest_path_for(run_dir_for(self.runs_root, test_path))
        try:
            obj = self.store.get(pointer_path)
            return decode_pointer(obj.content, pointer_path)
        except NotFound:
            return None
        except MalformedRecord as e:
            logger.warning(f"Ignoring unreadable pointer: {e}")
            return None
        except StoreError as e:
            logger.warning(f"Could not read pointer {pointer_path}, scanning instead: {e}")
            return None

    def scan_runs(self, test_path: str, limit: Optional[int] = None) -> RunScan:
        """Read runs for a test, newest first.

        Malformed runs are skipped and collected, never raised. A missing
        directory yields an empty scan.
        """
        run_dir = run_dir_for(self.runs_root, test_path)
        names = self._run_files(run_dir)
        if limit is not None:
            names = names[:limit]

        scan = RunScan()
        for name in names:
            run_path = f"{run_dir}/{name}"
            try:
                scan.runs.append(self._read_run(run_path))
            except NotFound:
                logger.debug(f"Run {run_path} vanished during scan")
            except MalformedRecord as e:
                logger.warning(f"Skipping malformed run: {e}")
                scan.malformed.append(e)
        return scan

    def list_runs(self, test_path: str, limit: int = DEFAULT_RUNS_LIMIT) -> list[RunRecord]:
        """Newest-first runs for a test; limit is clamped to 1..50."""
        limit = max(1, min(MAX_RUNS_LIMIT, int(limit)))
        return self.scan_runs(test_path, limit).runs

    def _scan_latest_run(self, test_path: str) -> Optional[RunRecord]:
        """Newest decodable run, walking past malformed ones."""
        run_dir = run_dir_for(self.runs_root, test_path)
        for name in self._run_files(run_dir):
            run_path = f"{run_dir}/{name}"
            try:
                return self._read_run(run_path)
            except NotFound:
                continue
            except MalformedRecord as e:
                logger.warning(f"Skipping malformed run: {e}")
        return None

    def get_latest(self, test_path: str, use_index: bool = True) -> Optional[LatestPointer]:
        """Latest result for a test: pointer first, directory scan as fallback."""
        if use_index:
            pointer = self.read_pointer(test_path)
            if pointer is not None:
                return pointer

        run = self._scan_latest_run(test_path)
        if run is None:
            return None
        return LatestPointer.from_run(run)

    def latest_run(self, test_path: str) -> Optional[RunRecord]:
        """Full record of the newest run.

        Always scans: run writes don't refresh latest.json, so the pointer may
        name an older run, and it carries no notes anyway.
        """
        return self._scan_latest_run(test_path)

    # --- repairs ---

    def _write_pointer(self, pointer_path: str, pointer: LatestPointer, message: str) -> str:
        """Create or replace latest.json; returns "created" or "updated"."""
        content = encode_payload(pointer.to_payload())
        attempt = 0
        while True:
            attempt += 1
            try:
                version = self.store.get(pointer_path).version
            except NotFound:
                version = None
            try:
                self.store.put(pointer_path, content, message, expected_version=version)
                return "updated" if version else "created"
            except VersionConflict:
                if attempt >= POINTER_WRITE_ATTEMPTS:
                    raise
                logger.warning(f"Pointer {pointer_path} changed during write, retrying")

    def _delete_pointer(self, pointer_path: str) -> bool:
        try:
            current = self.store.get(pointer_path)
        except NotFound:
            return False
        try:
            self.store.delete(pointer_path, current.version, "Delete latest.json (no runs remaining)")
        except NotFound:
            return False
        return True

    def rebuild(self, test_path: str) -> RebuildResult:
        """Recompute latest.json from the remaining runs of a test."""
        pointer_path = latest_path_for(run_dir_for(self.runs_root, test_path))
        run = self._scan_latest_run(test_path)

        if run is None:
            if self._delete_pointer(pointer_path):
                logger.info(f"Deleted pointer for {test_path}: no runs remaining")
                return RebuildResult(action="deleted")
            return RebuildResult(action="absent")

        pointer = LatestPointer.from_run(run, updated_at=self._now())
        self._write_pointer(pointer_path, pointer, "Update latest run index after deletion")
        logger.info(f"Rebuilt pointer for {test_path} -> {pointer.run_file}")
        return RebuildResult(action="written", pointer=pointer)

    def delete_run(self, run_path: str, rebuild: bool = True) -> Optional[RebuildResult]:
        """Delete a run record and repair its directory's pointer.

        Raises:
            NotFound: if the run doesn't exist
            ValueError: if run_path isn't a run file under runs_root
        """
        run_dir, filename = split_run_path(run_path)
        test_path = test_path_for_run_dir(self.runs_root, run_dir)
        if test_path is None or not parse_run_filename(filename):
            raise ValueError(f"Not a run record path: {run_path}")

        current = self.store.get(run_path)
        self.store.delete(run_path, current.version, f"Delete test run: {run_path}")
        logger.info(f"Deleted run {run_path}")

        if not rebuild:
            return None
        return self.rebuild(test_path)

    # --- full scans ---

    def snapshot_from_tree(self, paths: Optional[list[str]] = None) -> dict[str, list[str]]:
        """Map test path -> its run paths, newest first, from one recursive listing.

        Pass `paths` to reuse a listing already fetched.
        """
        if paths is None:
            paths = self.store.list_tree()
        runs: dict[str, list[tuple[tuple[int, str], str]]] = {}
        for blob_path in paths:
            run_dir, filename = split_run_path(blob_path)
            if not parse_run_filename(filename):
                continue
            test_path = test_path_for_run_dir(self.runs_root, run_dir)
            if test_path is None:
                continue
            runs.setdefault(test_path, []).append((run_sort_key(filename), blob_path))
        return {
            test_path: [run_path for _, run_path in sorted(entries, reverse=True)]
            for test_path, entries in runs.items()
        }

    def latest_from_snapshot(self, snapshot: dict[str, list[str]]) -> SnapshotLatest:
        """Read the newest decodable run of each snapshot entry.

        Walks past malformed or vanished runs the same way get_latest does.
        """
        result = SnapshotLatest()
        for test_path, run_paths in snapshot.items():
            for run_path in run_paths:
                try:
                    result.latest[test_path] = LatestPointer.from_run(self._read_run(run_path))
                    break
                except NotFound:
                    logger.debug(f"Run {run_path} vanished before it could be read")
                except MalformedRecord as e:
                    logger.warning(f"Skipping malformed run: {e}")
                    result.malformed.append(e)
        return result

    def backfill(self, dry_run: bool = False) -> BackfillReport:
        """Create or refresh latest.json in every run directory."""
        run_dirs = set()
        for blob_path in self.store.list_tree():
            run_dir, filename = split_run_path(blob_path)
            if not filename.endswith(".json"):
                continue
            if test_path_for_run_dir(self.runs_root, run_dir) is not None:
                run_dirs.add(run_dir)

        report = BackfillReport(total_directories=len(run_dirs), dry_run=dry_run)
        for run_dir in sorted(run_dirs):
            report.processed += 1
            test_path = test_path_for_run_dir(self.runs_root, run_dir)
            try:
                run = self._scan_latest_run(test_path)
                if run is None:
                    report.skipped += 1
                    continue

                pointer_path = latest_path_for(run_dir)
                pointer = LatestPointer.from_run(run, updated_at=self._now())
                detail = {
                    "directory": run_dir,
                    "latest_run_file": run.run_file,
                    "pointer": pointer.to_payload(),
                }

                if dry_run:
                    exists = self._pointer_exists(pointer_path)
                    detail["action"] = "would-update" if exists else "would-create"
                    action = "updated" if exists else "created"
                else:
                    action = self._write_pointer(
                        pointer_path, pointer, f"Backfill latest run index for {run_dir}")
                    detail["action"] = action

                if action == "updated":
                    report.updated += 1
                else:
                    report.created += 1
                report.details.append(detail)
            except (StoreError, MalformedRecord) as e:
                logger.warning(f"Backfill failed for {run_dir}: {e}")
                report.errors.append(f"Error processing {run_dir}: {e}")

        logger.info(
            f"Backfill {'(dry run) ' if dry_run else ''}processed {report.processed} "
            f"directories: {report.created} created, {report.updated} updated, "
            f"{report.skipped} skipped, {len(report.errors)} errors"
        )
        return report

    def _pointer_exists(self, pointer_path: str) -> bool:
        try:
            self.store.get(pointer_path)
        except NotFound:
            return False
        return True

