"""Tests for qatrace.ledger.keys module."""

import re

import pytest

from qatrace.ledger.keys import (
    decode_run_dir_name,
    encode_test_path,
    generate_run_filename,
    is_run_filename,
    latest_path_for,
    parse_run_filename,
    run_dir_for,
    run_sort_key,
)
from qatrace.ledger import keys


class TestTestPathEncoding:
    """Test the test path <-> run directory mapping."""

    def test_replaces_slashes(self):
        assert encode_test_path("qa-testcases/login/TC-001.md") == "qa-testcases__login__TC-001.md"

    def test_round_trip(self):
        path = "qa-testcases/a/b/c.md"
        assert decode_run_dir_name(encode_test_path(path)) == path

    def test_strips_surrounding_slashes(self):
        assert encode_test_path("/qa-testcases/x.md/") == "qa-testcases__x.md"

    @pytest.mark.parametrize("bad", ["", "   ", None])
    def test_empty_rejected(self, bad):
        with pytest.raises(ValueError):
            encode_test_path(bad)

    def test_marker_rejected(self):
        with pytest.raises(ValueError, match="__"):
            encode_test_path("qa-testcases/odd__name.md")

    def test_run_dir_and_pointer(self):
        run_dir = run_dir_for("qa-runs", "qa-testcases/x.md")
        assert run_dir == "qa-runs/qa-testcases__x.md"
        assert latest_path_for(run_dir) == "qa-runs/qa-testcases__x.md/latest.json"

    def test_test_path_for_run_dir(self):
        assert keys.test_path_for_run_dir("qa-runs", "qa-runs/qa-testcases__x.md") == "qa-testcases/x.md"
        assert keys.test_path_for_run_dir("qa-runs", "other/qa-testcases__x.md") is None
        assert keys.test_path_for_run_dir("qa-runs", "qa-runs/a/b") is None
        assert keys.test_path_for_run_dir("qa-runs", "qa-runs") is None


class TestRunFilenames:
    """Test run filename parsing and generation."""

    def test_parse_with_suffix(self):
        assert parse_run_filename("run-1704067200000-a1b2c3.json") == (1704067200000, "a1b2c3")

    def test_parse_legacy(self):
        assert parse_run_filename("run-1704067200000.json") == (1704067200000, "")

    @pytest.mark.parametrize("name", ["latest.json", "run-.json", "run-12-ABC.json", "run-12.txt"])
    def test_rejects_other_names(self, name):
        assert parse_run_filename(name) is None
        assert is_run_filename(name) is False

    def test_generated_names(self):
        assert re.match(r"^run-42-[0-9a-f]{6}\.json$", generate_run_filename(42))
        assert re.match(r"^run-42-[0-9a-f]{12}\.json$", generate_run_filename(42, extended=True))

    def test_sort_by_timestamp_then_suffix(self):
        names = ["run-20-aaaaaa.json", "run-100-aaaaaa.json", "run-20-bbbbbb.json", "run-5.json"]
        assert sorted(names, key=run_sort_key) == [
            "run-5.json", "run-20-aaaaaa.json", "run-20-bbbbbb.json", "run-100-aaaaaa.json"]
