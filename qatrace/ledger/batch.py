"""
Batch result submission.

Items are recorded one at a time, in order, to keep write conflicts on the
shared branch low. A failing item is reported and the batch moves on.
"""

import logging
import time
from typing import Callable, Iterable, Union

from qatrace.lib.errors import LedgerWriteError, StoreError
from qatrace.ledger.models import BatchItem, BatchItemResult, BatchReport
from qatrace.ledger.recorder import RunRecorder

logger = logging.getLogger(__name__)

# Pause between items to stay under API rate limits
DEFAULT_ITEM_DELAY_SECONDS = 0.05


class BatchSubmitter:
    """Drives a RunRecorder over a list of results."""

    def __init__(
        self,
        recorder: RunRecorder,
        item_delay: float = DEFAULT_ITEM_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.recorder = recorder
        self.item_delay = item_delay
        self._sleep = sleep

    def _record_one(self, raw: Union[BatchItem, dict]) -> BatchItemResult:
        fallback_path = (raw.path if isinstance(raw, BatchItem)
                         else (raw.get("path") if isinstance(raw, dict) else None)) or "unknown"
        try:
            item = raw if isinstance(raw, BatchItem) else BatchItem.from_dict(raw)
            item.check()
        except ValueError as e:
            return BatchItemResult(path=fallback_path, ok=False, error=str(e),
                                   error_type="ValueError", exception=e)

        try:
            outcome = self.recorder.record_run(
                item.path,
                item.result,
                notes=item.notes,
                steps=item.steps,
                story_id=item.story_id,
            )
        except (ValueError, StoreError, LedgerWriteError) as e:
            logger.warning(f"Batch item {item.path} failed: {e}")
            return BatchItemResult(path=item.path, ok=False, error=str(e),
                                   error_type=type(e).__name__, exception=e)
        except Exception as e:
            logger.exception(f"Unexpected error recording batch item {item.path}")
            return BatchItemResult(path=item.path, ok=False, error=str(e),
                                   error_type=type(e).__name__, exception=e)

        return BatchItemResult(
            path=item.path,
            ok=True,
            result=item.result,
            executed_at=outcome.record.executed_at if outcome.record else None,
            run_file=outcome.ref.run_file if outcome.ref else None,
            noop=outcome.noop,
        )

    def submit_batch(self, items: Iterable[Union[BatchItem, dict]]) -> BatchReport:
        """Record every item sequentially and report per-item outcomes.

        Always returns a complete report, even if every item fails.
        """
        items = list(items)
        report = BatchReport(total_submitted=len(items))

        for position, raw in enumerate(items):
            if position > 0 and self.item_delay > 0:
                self._sleep(self.item_delay)
            report.items.append(self._record_one(raw))

        logger.info(
            f"Batch finished: {report.successful} of {report.total_submitted} recorded, "
            f"{report.failed} failed"
        )
        return report
