"""Tests for qatrace.lib.envparse module."""

import pytest

from qatrace.lib.envparse import env_overrides, load_env, parse_env


class TestParseEnv:
    """Test KEY=value parsing."""

    def test_basic(self):
        assert parse_env("A=1\nB_2=two\n") == {"A": "1", "B_2": "two"}

    def test_comments_and_blank_lines(self):
        assert parse_env("# comment\n\nA=1\n   # indented comment\n") == {"A": "1"}

    def test_quotes_removed(self):
        assert parse_env("A=\"x y\"\nB='z'\n") == {"A": "x y", "B": "z"}

    def test_url_value(self):
        env = parse_env("STORIES_REPO=https://github.com/acme/stories.git")
        assert env["STORIES_REPO"] == "https://github.com/acme/stories.git"

    def test_missing_equals(self):
        with pytest.raises(ValueError, match="Line 2"):
            parse_env("A=1\nBROKEN\n")

    def test_invalid_key(self):
        with pytest.raises(ValueError, match="Invalid key"):
            parse_env("lower=1")

    @pytest.mark.parametrize("value", ["`id`", "$(id)", "${HOME}", "a;b", "a && b", "a || b", "a | b"])
    def test_forbidden_patterns(self, value):
        with pytest.raises(ValueError, match="Forbidden"):
            parse_env(f"A={value}")


class TestOverrides:
    """Test QATRACE_ environment overrides."""

    def test_collects_prefixed(self):
        environ = {"QATRACE_BRANCH": "qa", "HOME": "/root", "QATRACE_lower": "x"}
        assert env_overrides(environ) == {"BRANCH": "qa"}

    def test_forbidden_in_override(self):
        with pytest.raises(ValueError, match="QATRACE_BRANCH"):
            env_overrides({"QATRACE_BRANCH": "$(whoami)"})

    def test_load_env_applies_overrides(self, tmp_path):
        env_file = tmp_path / "project.env"
        env_file.write_text("BRANCH=main\nRUNS_ROOT=qa-runs\n")

        env = load_env(str(env_file), {"QATRACE_BRANCH": "release"})

        assert env == {"BRANCH": "release", "RUNS_ROOT": "qa-runs"}

    def test_load_env_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env(str(tmp_path / "nope.env"), {})
