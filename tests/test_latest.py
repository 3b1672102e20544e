"""Tests for qatrace.ledger.latest module."""

import json

import pytest

from qatrace.lib.errors import NotFound, UpstreamUnavailable
from qatrace.ledger.latest import LatestIndex

TEST_PATH = "qa-testcases/login/TC-001.md"
RUN_DIR = "qa-runs/qa-testcases__login__TC-001.md"
POINTER = f"{RUN_DIR}/latest.json"


@pytest.fixture
def index(store):
    return LatestIndex(store, now=lambda: "2024-06-01T00:00:00Z")


class TestGetLatest:
    """Test the read contract: pointer first, scan as fallback."""

    def test_no_directory_returns_none(self, index):
        assert index.get_latest(TEST_PATH) is None

    def test_scans_when_no_pointer(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="fail")
        put_run(store, TEST_PATH, 3000, result="pass", suffix="cccccc")
        put_run(store, TEST_PATH, 2000, result="fail", suffix="bbbbbb")

        latest = index.get_latest(TEST_PATH)

        assert latest.result == "pass"
        assert latest.run_file == "run-3000-cccccc.json"
        assert latest.from_index is False

    def test_uses_pointer_when_present(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="fail")
        index.rebuild(TEST_PATH)

        latest = index.get_latest(TEST_PATH)

        assert latest.from_index is True
        assert latest.run_file == "run-1000-aaaaaa.json"
        assert latest.updated_at == "2024-06-01T00:00:00Z"

    def test_use_index_false_skips_stale_pointer(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="fail")
        index.rebuild(TEST_PATH)
        put_run(store, TEST_PATH, 2000, result="pass", suffix="bbbbbb")

        assert index.get_latest(TEST_PATH).result == "fail"
        assert index.get_latest(TEST_PATH, use_index=False).result == "pass"

    def test_malformed_pointer_falls_back(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="pass")
        store.put(POINTER, "{not json", "corrupt")

        latest = index.get_latest(TEST_PATH)

        assert latest.result == "pass"
        assert latest.from_index is False

    def test_pointer_read_failure_falls_back(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="pass")
        index.rebuild(TEST_PATH)
        store.inject("get", UpstreamUnavailable(POINTER, "HTTP 502"),
                     match=lambda p: p.endswith("latest.json"))

        latest = index.get_latest(TEST_PATH)

        assert latest.result == "pass"
        assert latest.from_index is False

    def test_skips_malformed_newest_run(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="fail")
        store.put(f"{RUN_DIR}/run-2000-bbbbbb.json", json.dumps({"result": "pass"}), "bad")

        assert index.get_latest(TEST_PATH).run_file == "run-1000-aaaaaa.json"

    def test_legacy_filename_without_suffix(self, index, store):
        payload = {"path": TEST_PATH, "result": "PASS", "executed_by": "bob",
                   "executed_at": "2023-01-01T00:00:00Z"}
        store.put(f"{RUN_DIR}/run-500.json", json.dumps(payload), "legacy")

        latest = index.get_latest(TEST_PATH)
        assert latest.run_file == "run-500.json"
        assert latest.result == "pass"


class TestListRuns:
    """Test run listing."""

    def test_newest_first(self, index, store, put_run):
        for ms, suffix in ((1000, "aaaaaa"), (3000, "cccccc"), (2000, "bbbbbb")):
            put_run(store, TEST_PATH, ms, suffix=suffix)

        runs = index.list_runs(TEST_PATH)
        assert [r.run_file for r in runs] == [
            "run-3000-cccccc.json", "run-2000-bbbbbb.json", "run-1000-aaaaaa.json"]

    def test_limit_clamped(self, index, store, put_run):
        for i in range(3):
            put_run(store, TEST_PATH, 1000 + i, suffix=f"a{i}")

        assert len(index.list_runs(TEST_PATH, limit=0)) == 1
        assert len(index.list_runs(TEST_PATH, limit=2)) == 2
        assert len(index.list_runs(TEST_PATH, limit=500)) == 3

    def test_missing_directory_is_empty(self, index):
        assert index.list_runs(TEST_PATH) == []

    def test_scan_reports_malformed(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000)
        store.put(f"{RUN_DIR}/run-2000-bbbbbb.json", "[]", "bad")

        scan = index.scan_runs(TEST_PATH)
        assert [r.run_file for r in scan.runs] == ["run-1000-aaaaaa.json"]
        assert len(scan.malformed) == 1
        assert scan.malformed[0].path == f"{RUN_DIR}/run-2000-bbbbbb.json"

    def test_pointer_not_listed_as_run(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000)
        index.rebuild(TEST_PATH)

        assert len(index.list_runs(TEST_PATH)) == 1


class TestDeleteRun:
    """Test deletion with pointer rebuild."""

    def test_deleting_sole_run_removes_pointer(self, index, store, put_run):
        run_path = put_run(store, TEST_PATH, 1000)
        index.rebuild(TEST_PATH)

        result = index.delete_run(run_path)

        assert result.action == "deleted"
        assert not store.exists(POINTER)
        assert index.get_latest(TEST_PATH) is None

    def test_deleting_older_run_keeps_newer(self, index, store, put_run):
        older = put_run(store, TEST_PATH, 1000, result="fail")
        put_run(store, TEST_PATH, 2000, result="pass", suffix="bbbbbb")

        result = index.delete_run(older)

        assert result.action == "written"
        latest = index.get_latest(TEST_PATH)
        assert latest.run_file == "run-2000-bbbbbb.json"
        assert latest.result == "pass"

    def test_deleting_newest_rewinds_pointer(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="fail")
        newer = put_run(store, TEST_PATH, 2000, result="pass", suffix="bbbbbb")
        index.rebuild(TEST_PATH)

        index.delete_run(newer)

        pointer = json.loads(store.get(POINTER).content)
        assert pointer["run_file"] == "run-1000-aaaaaa.json"
        assert pointer["result"] == "fail"

    def test_without_rebuild(self, index, store, put_run):
        run_path = put_run(store, TEST_PATH, 1000)
        assert index.delete_run(run_path, rebuild=False) is None
        assert not store.exists(run_path)

    def test_missing_run_raises(self, index):
        with pytest.raises(NotFound):
            index.delete_run(f"{RUN_DIR}/run-1-abcdef.json")

    def test_rejects_non_run_paths(self, index):
        with pytest.raises(ValueError):
            index.delete_run(POINTER)
        with pytest.raises(ValueError):
            index.delete_run("elsewhere/run-1-abcdef.json")

    def test_rebuild_without_runs_or_pointer(self, index):
        assert index.rebuild(TEST_PATH).action == "absent"


class TestTreeScans:
    """Test snapshot and backfill over a recursive listing."""

    def test_snapshot_orders_runs_newest_first(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000)
        put_run(store, TEST_PATH, 2000, suffix="bbbbbb")
        put_run(store, "qa-testcases/cart/TC-9.md", 500)
        store.put("qa-testcases/login/TC-001.md", "---\ntitle: x\n---\n", "tc")

        snapshot = index.snapshot_from_tree()

        assert snapshot == {
            TEST_PATH: [f"{RUN_DIR}/run-2000-bbbbbb.json", f"{RUN_DIR}/run-1000-aaaaaa.json"],
            "qa-testcases/cart/TC-9.md": ["qa-runs/qa-testcases__cart__TC-9.md/run-500-aaaaaa.json"],
        }

    def test_latest_from_snapshot(self, index, store, put_run):
        put_run(store, TEST_PATH, 2000, result="fail")

        result = index.latest_from_snapshot(index.snapshot_from_tree())

        assert result.latest[TEST_PATH].result == "fail"
        assert result.malformed == []

    def test_latest_from_snapshot_walks_past_malformed(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000, result="pass")
        store.put(f"{RUN_DIR}/run-2000-bbbbbb.json", "{not json", "bad")

        result = index.latest_from_snapshot(index.snapshot_from_tree())

        assert result.latest[TEST_PATH].result == "pass"
        assert result.latest[TEST_PATH] == index.get_latest(TEST_PATH)
        assert [e.path for e in result.malformed] == [f"{RUN_DIR}/run-2000-bbbbbb.json"]

    def test_latest_from_snapshot_all_malformed(self, index, store):
        store.put(f"{RUN_DIR}/run-2000-bbbbbb.json", "{not json", "bad")

        result = index.latest_from_snapshot(index.snapshot_from_tree())

        assert TEST_PATH not in result.latest
        assert len(result.malformed) == 1

    def test_backfill_creates_and_updates(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000)
        put_run(store, "qa-testcases/cart/TC-9.md", 500)
        index.rebuild("qa-testcases/cart/TC-9.md")

        report = index.backfill()

        assert report.total_directories == 2
        assert report.processed == 2
        assert report.created == 1
        assert report.updated == 1
        assert report.errors == []
        assert store.exists(POINTER)

    def test_backfill_dry_run_writes_nothing(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000)

        report = index.backfill(dry_run=True)

        assert report.dry_run is True
        assert report.created == 1
        assert report.details[0]["action"] == "would-create"
        assert not store.exists(POINTER)

    def test_backfill_skips_directories_without_valid_runs(self, index, store):
        store.put(f"{RUN_DIR}/run-1-aaaaaa.json", "garbage", "bad")

        report = index.backfill()

        assert report.skipped == 1
        assert report.created == 0

    def test_backfill_records_errors(self, index, store, put_run):
        put_run(store, TEST_PATH, 1000)
        store.inject("put", UpstreamUnavailable(POINTER, "HTTP 503"))

        report = index.backfill()

        assert len(report.errors) == 1
        assert RUN_DIR in report.errors[0]
