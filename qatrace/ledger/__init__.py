"""
Execution ledger.

Appends immutable run records to the object store and maintains the
latest.json pointer each test directory carries.
"""

from qatrace.ledger.batch import BatchSubmitter
from qatrace.ledger.latest import BackfillReport, LatestIndex, RebuildResult, RunScan, SnapshotLatest
from qatrace.ledger.log import AppendOnlyLog, AppendResult
from qatrace.ledger.models import (
    BatchItem,
    BatchItemResult,
    BatchReport,
    LatestPointer,
    RecordOutcome,
    RecordRef,
    RunRecord,
    StepOutcome,
)
from qatrace.ledger.recorder import RunRecorder

__all__ = [
    "AppendOnlyLog",
    "AppendResult",
    "BackfillReport",
    "BatchItem",
    "BatchItemResult",
    "BatchReport",
    "BatchSubmitter",
    "LatestIndex",
    "LatestPointer",
    "RebuildResult",
    "RecordOutcome",
    "RecordRef",
    "RunRecord",
    "RunRecorder",
    "RunScan",
    "SnapshotLatest",
    "StepOutcome",
]
