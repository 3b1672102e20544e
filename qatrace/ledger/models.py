"""
Data models for the execution ledger.

Payloads coming back from the store are validated against the bundled
JSON schemas and decoded into these dataclasses; anything that doesn't fit
raises MalformedRecord instead of leaking partial dicts.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from qatrace.lib.constants import (
    MAX_STEP_NAME_LEN,
    STEP_UNSET,
    VALID_RESULTS,
    VALID_STEP_RESULTS,
)
from qatrace.lib.errors import MalformedRecord
from qatrace.lib.validate import ValidationError, validate
from qatrace.ledger.keys import parse_run_filename, split_run_path


@dataclass
class StepOutcome:
    """Outcome of one step within a run."""
    name: str
    result: str = STEP_UNSET  # pass, fail, skip, unset
    notes: str = ""

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "result": None if self.result == STEP_UNSET else self.result,
            "notes": self.notes,
        }


def normalize_steps(raw_steps: Optional[list]) -> Optional[list[StepOutcome]]:
    """Coerce caller-supplied steps into StepOutcome objects.

    Names are truncated; unknown results become "unset".

    Raises:
        ValueError: if steps is not a list of objects
    """
    if raw_steps is None:
        return None
    if not isinstance(raw_steps, list):
        raise ValueError("steps must be a list")

    steps = []
    for raw in raw_steps:
        if isinstance(raw, StepOutcome):
            raw = raw.to_payload()
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid step: {raw!r}")
        result = raw.get("result")
        steps.append(StepOutcome(
            name=str(raw.get("name") or "")[:MAX_STEP_NAME_LEN],
            result=result if result in VALID_STEP_RESULTS else STEP_UNSET,
            notes=str(raw.get("notes") or ""),
        ))
    return steps


@dataclass
class RunRecord:
    """One immutable test execution."""
    path: str                      # test case path
    result: str                    # pass, fail
    executed_by: str
    executed_at: str               # ISO timestamp
    notes: str = ""
    story_id: Optional[str] = None
    steps: Optional[list[StepOutcome]] = None
    run_path: str = ""             # store key, empty until written

    @property
    def run_file(self) -> str:
        return split_run_path(self.run_path)[1] if self.run_path else ""

    @property
    def timestamp_ms(self) -> int:
        parsed = parse_run_filename(self.run_file)
        return parsed[0] if parsed else 0

    def to_payload(self) -> dict:
        payload = {
            "path": self.path,
            "storyId": self.story_id,
            "result": self.result,
            "notes": self.notes,
            "executed_by": self.executed_by,
            "executed_at": self.executed_at,
        }
        if self.steps is not None:
            payload["steps"] = [s.to_payload() for s in self.steps]
        return payload


@dataclass
class LatestPointer:
    """Denormalized pointer to the newest run of a test."""
    result: str
    executed_at: str
    executed_by: str
    run_file: str
    updated_at: Optional[str] = None
    from_index: bool = False  # True when read from latest.json, False when scanned

    @classmethod
    def from_run(cls, run: RunRecord, updated_at: Optional[str] = None) -> "LatestPointer":
        return cls(
            result=run.result,
            executed_at=run.executed_at,
            executed_by=run.executed_by,
            run_file=run.run_file,
            updated_at=updated_at,
        )

    def to_payload(self) -> dict:
        return {
            "result": self.result,
            "executed_at": self.executed_at,
            "executed_by": self.executed_by,
            "run_file": self.run_file,
            "updated_at": self.updated_at,
        }


def _load_json(content: str, path: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedRecord(path, f"Invalid JSON: {e}") from None


def decode_run(content: str, run_path: str) -> RunRecord:
    """Parse and validate a run payload.

    Raises:
        MalformedRecord: if the payload doesn't match the run schema
    """
    data = _load_json(content, run_path)
    try:
        validate(data, "run_record")
    except ValidationError as e:
        raise MalformedRecord(run_path, str(e)) from None

    steps = data.get("steps")
    return RunRecord(
        path=data["path"],
        result=data["result"].lower(),
        executed_by=data["executed_by"],
        executed_at=data["executed_at"],
        notes=data.get("notes") or "",
        story_id=data.get("storyId"),
        steps=normalize_steps(steps) if steps is not None else None,
        run_path=run_path,
    )


def decode_pointer(content: str, pointer_path: str) -> LatestPointer:
    """Parse and validate a latest.json payload.

    Raises:
        MalformedRecord: if the payload doesn't match the pointer schema
    """
    data = _load_json(content, pointer_path)
    try:
        validate(data, "latest_pointer")
    except ValidationError as e:
        raise MalformedRecord(pointer_path, str(e)) from None

    return LatestPointer(
        result=data["result"].lower(),
        executed_at=data["executed_at"],
        executed_by=data.get("executed_by") or "",
        run_file=data["run_file"],
        updated_at=data.get("updated_at"),
        from_index=True,
    )


def encode_payload(payload: dict) -> str:
    return json.dumps(payload, indent=2)


@dataclass
class RecordRef:
    """Where a run record lives in the store."""
    path: str       # full store key
    version: str = ""

    @property
    def run_file(self) -> str:
        return split_run_path(self.path)[1]


@dataclass
class RecordOutcome:
    """Result of recording a run."""
    noop: bool
    ref: Optional[RecordRef]
    record: Optional[RunRecord]
    concurrent: bool = False  # another writer created the key first


@dataclass
class BatchItem:
    """One result submitted in a batch."""
    path: str
    result: str
    notes: str = ""
    story_id: Optional[str] = None
    steps: Optional[list] = None

    @classmethod
    def from_dict(cls, data: dict) -> "BatchItem":
        """Build from a request dict.

        Raises:
            ValueError: if path/result are missing or result is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Invalid result format")
        try:
            validate(data, "batch_item")
        except ValidationError:
            raise ValueError("Invalid result format") from None
        return cls(
            path=data["path"],
            result=data["result"],
            notes=data.get("notes") or "",
            story_id=data.get("storyId"),
            steps=data.get("steps"),
        )

    def check(self) -> None:
        """Raises ValueError if the item can't be recorded."""
        if not self.path or self.result not in VALID_RESULTS:
            raise ValueError("Invalid result format")
        if self.steps is not None and not isinstance(self.steps, list):
            raise ValueError("Invalid result format")


@dataclass
class BatchItemResult:
    """Per-item outcome of a batch submission."""
    path: str
    ok: bool
    result: Optional[str] = None
    executed_at: Optional[str] = None
    run_file: Optional[str] = None
    noop: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)


@dataclass
class BatchReport:
    """Summary of a batch submission."""
    total_submitted: int
    items: list[BatchItemResult] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.ok)

    @property
    def success_results(self) -> list[BatchItemResult]:
        return [item for item in self.items if item.ok]

    @property
    def failed_results(self) -> list[BatchItemResult]:
        return [item for item in self.items if not item.ok]
