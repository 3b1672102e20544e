"""
Run recording.

Appends one immutable run record per execution. Recording the same result
and notes as the immediately preceding run is a no-op. latest.json is not
written here; see LatestIndex.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from qatrace.lib.config import RetryPolicy
from qatrace.lib.constants import DEFAULT_RUNS_ROOT, VALID_RESULTS
from qatrace.lib.validate import validate_before_write
from qatrace.ledger.keys import generate_run_filename, run_dir_for
from qatrace.ledger.latest import LatestIndex
from qatrace.ledger.log import AppendOnlyLog
from qatrace.ledger.models import (
    RecordOutcome,
    RecordRef,
    RunRecord,
    encode_payload,
    normalize_steps,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RunRecorder:
    """Writes run records through an AppendOnlyLog."""

    def __init__(
        self,
        store,
        executed_by: str,
        runs_root: str = DEFAULT_RUNS_ROOT,
        index: Optional[LatestIndex] = None,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.executed_by = executed_by
        self.runs_root = runs_root
        self.index = index or LatestIndex(store, runs_root)
        self.log = AppendOnlyLog(store, retry=retry, sleep=sleep)
        self._clock = clock

    def record_run(
        self,
        test_path: str,
        result: str,
        notes: str = "",
        steps: Optional[list] = None,
        story_id: Optional[str] = None,
    ) -> RecordOutcome:
        """Record one execution of a test.

        Args:
            test_path: Test case path, e.g. "qa-testcases/login/TC-001.md"
            result: "pass" or "fail"
            notes: Free text; compared trimmed for the no-op check
            steps: Optional per-step outcomes (dicts with name/result/notes)
            story_id: Story reference copied into the record

        Returns:
            RecordOutcome with noop=True and the existing record when the
            latest run already has this result and notes.

        Raises:
            ValueError: on invalid input
            LedgerWriteError: if the write could not be completed
            UpstreamUnavailable: if the store is unreachable
        """
        if result not in VALID_RESULTS:
            raise ValueError(f"result must be one of {VALID_RESULTS}, got {result!r}")
        notes = notes or ""
        run_dir = run_dir_for(self.runs_root, test_path)
        normalized_steps = normalize_steps(steps)

        latest = self.index.latest_run(test_path)
        if latest is not None and latest.result == result and latest.notes.strip() == notes.strip():
            logger.info(f"No change for {test_path}: latest run already {result.upper()}")
            return RecordOutcome(
                noop=True,
                ref=RecordRef(path=latest.run_path),
                record=latest,
            )

        moment = self._clock()
        timestamp_ms = int(moment.timestamp() * 1000)
        record = RunRecord(
            path=test_path,
            result=result,
            executed_by=self.executed_by,
            executed_at=format_timestamp(moment),
            notes=notes,
            story_id=story_id or None,
            steps=normalized_steps,
        )
        payload = record.to_payload()
        validate_before_write(payload, "run_record", run_dir)

        def key_generator(extended: bool) -> str:
            return f"{run_dir}/{generate_run_filename(timestamp_ms, extended)}"

        appended = self.log.append(
            key_generator,
            encode_payload(payload),
            f"Record test result: {result} by {self.executed_by}",
        )
        record.run_path = appended.path
        logger.info(f"Recorded {result.upper()} for {test_path} at {appended.path}")

        return RecordOutcome(
            noop=False,
            ref=RecordRef(path=appended.path, version=appended.version),
            record=record,
            concurrent=appended.concurrent,
        )
