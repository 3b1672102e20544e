"""Shared fixtures: in-memory store, fake clocks, recorded sleeps."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from qatrace.lib.memstore import MemoryStore


class FakeClock:
    """Returns a fixed start time, advancing by `step` on every call."""

    def __init__(self, start=datetime(2024, 1, 1, tzinfo=timezone.utc), step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


class FakeMonotonic:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _put_run(store, test_path, ms, result="pass", notes="", suffix="aaaaaa",
             runs_root="qa-runs", executed_by="alice"):
    """Write a run record directly, bypassing the recorder."""
    run_dir = f"{runs_root}/{test_path.replace('/', '__')}"
    run_path = f"{run_dir}/run-{ms}-{suffix}.json"
    payload = {
        "path": test_path,
        "storyId": None,
        "result": result,
        "notes": notes,
        "executed_by": executed_by,
        "executed_at": datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(),
    }
    store.put(run_path, json.dumps(payload), "seed run")
    return run_path


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def put_run():
    """Writer for raw run records: put_run(store, test_path, ms, result=..., notes=...)."""
    return _put_run


@pytest.fixture
def sleeps():
    """List that collects every requested sleep duration."""
    return []
