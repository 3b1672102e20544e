"""
Key layout for run records.

  <runs_root>/<encoded test path>/run-<timestampMs>-<suffix>.json
  <runs_root>/<encoded test path>/latest.json

The encoded test path replaces every "/" with "__", giving one flat
directory per test.
"""

import secrets
from typing import Optional

from qatrace.lib.constants import LATEST_FILENAME, PATH_MARKER, RUN_FILE_PATTERN

SUFFIX_BYTES = 3           # 6 hex chars
EXTENDED_SUFFIX_BYTES = 6  # 12 hex chars, used after an anomalous conflict


def encode_test_path(test_path: str) -> str:
    """Turn a test path into its run directory name.

    Raises:
        ValueError: if the path is empty or already contains the marker
            (the encoding would no longer be reversible)
    """
    test_path = (test_path or "").strip().strip("/")
    if not test_path:
        raise ValueError("Test path is required")
    if PATH_MARKER in test_path:
        raise ValueError(f"Test path may not contain '{PATH_MARKER}': {test_path}")
    return test_path.replace("/", PATH_MARKER)


def decode_run_dir_name(name: str) -> str:
    """Inverse of encode_test_path."""
    return name.replace(PATH_MARKER, "/")


def run_dir_for(runs_root: str, test_path: str) -> str:
    return f"{runs_root}/{encode_test_path(test_path)}"


def latest_path_for(run_dir: str) -> str:
    return f"{run_dir}/{LATEST_FILENAME}"


def split_run_path(run_path: str) -> tuple[str, str]:
    """Split a run path into (run_dir, filename)."""
    run_dir, _, filename = run_path.rpartition("/")
    return run_dir, filename


def test_path_for_run_dir(runs_root: str, run_dir: str) -> Optional[str]:
    """Recover the test path from a run directory, or None if outside runs_root."""
    prefix = runs_root.rstrip("/") + "/"
    if not run_dir.startswith(prefix):
        return None
    name = run_dir[len(prefix):]
    if not name or "/" in name:
        return None
    return decode_run_dir_name(name)


def parse_run_filename(name: str) -> Optional[tuple[int, str]]:
    """Return (timestamp_ms, suffix) for a run filename, None otherwise."""
    match = RUN_FILE_PATTERN.match(name)
    if not match:
        return None
    return int(match.group(1)), match.group(2) or ""


def is_run_filename(name: str) -> bool:
    return parse_run_filename(name) is not None


def run_sort_key(name: str) -> tuple[int, str]:
    """Order run filenames by timestamp, then suffix."""
    return parse_run_filename(name) or (0, "")


def generate_run_filename(timestamp_ms: int, extended: bool = False) -> str:
    """Build a run filename from a millisecond timestamp and a random suffix."""
    suffix = secrets.token_hex(EXTENDED_SUFFIX_BYTES if extended else SUFFIX_BYTES)
    return f"run-{timestamp_ms}-{suffix}.json"
