"""Tests for qatrace.trace.resolver module."""

import pytest

from qatrace.trace.matrix import build_matrix
from qatrace.trace.models import Story, TestCase
from qatrace.trace.resolver import StoryIndex, extract_custom_id, first_number, story_keys


class TestExtractCustomId:
    """Test custom ID extraction from titles and bodies."""

    @pytest.mark.parametrize("title,expected", [
        ("MS-005: Login with SSO", "MS-005"),
        ("US-V-005 Checkout", "US-V-005"),
        ("[ab-12] Lowercase prefix", "AB-12"),
        ("QA-7 - Search", "QA-7"),
        ("Login with SSO", None),
        ("Fix 123 things", None),
        ("2024-01 roadmap", None),
        ("", None),
    ])
    def test_from_title(self, title, expected):
        assert extract_custom_id(title) == expected

    def test_from_body_field(self):
        body = "Some intro\n\n**Story ID:** PAY-42\n\nDetails"
        assert extract_custom_id("Payments", body) == "PAY-42"

    def test_from_plain_id_field(self):
        assert extract_custom_id("Payments", "id: pay-3\n") == "PAY-3"

    def test_from_heading(self):
        body = "### Story ID\n\nQA-3\n\n### Description\n..."
        assert extract_custom_id("Search", body) == "QA-3"

    def test_title_wins_over_body(self):
        assert extract_custom_id("MS-1: x", "Story ID: MS-2") == "MS-1"

    def test_body_without_id(self):
        assert extract_custom_id("Search", "As a user I want to search.") is None


class TestStoryKeys:
    """Test the set of textual forms a story answers to."""

    def test_numeric_forms(self):
        assert story_keys(12) == {"12", "#12", "US-12", "STORY-12", "ISSUE-12", "GH-12"}

    def test_includes_custom_id(self):
        assert "MS-005" in story_keys(12, "ms-005")


class TestFirstNumber:
    def test_leading_zeros_dropped(self):
        assert first_number("TC-007") == 7

    def test_no_digits(self):
        assert first_number("none") is None


class TestStoryIndex:
    """Test reference resolution."""

    @pytest.fixture
    def index(self):
        return StoryIndex([
            Story(number=12, title="MS-005: Login"),
            Story(number=5, title="Plain story five"),
            Story(number=7, title="Another plain story"),
        ])

    def test_custom_id_resolves(self, index):
        assert [s.number for s in index.resolve("MS-005")] == [12]
        assert [s.number for s in index.resolve(" ms-005 ")] == [12]

    def test_numeric_forms_still_resolve_story_with_custom_id(self, index):
        for ref in ("12", "#12", "US-12", "us-12"):
            assert [s.number for s in index.resolve(ref)] == [12]

    def test_digits_of_custom_id_do_not_reach_other_story(self, index):
        # "MS-005" matches exactly, so issue #5 is not considered
        assert [s.number for s in index.resolve("MS-005")] == [12]

    def test_unowned_custom_id_falls_back_to_digits(self):
        index = StoryIndex([Story(number=5, title="Plain story five")])
        assert [s.number for s in index.resolve("MS-005")] == [5]

    def test_owned_custom_id_shadows_plain_story_in_matrix(self, index):
        tests = [TestCase(path="qa-testcases/a.md", story_ref="MS-005")]

        matrix = build_matrix(index.stories, tests, [], {})

        by_number = {e.number: e for e in matrix.stories}
        assert [t.path for t in by_number[12].tests] == ["qa-testcases/a.md"]
        assert by_number[5].tests == []

    def test_bare_number_goes_to_matching_issue(self, index):
        assert [s.number for s in index.resolve("5")] == [5]

    def test_digit_fallback_for_plain_story(self, index):
        assert [s.number for s in index.resolve("007")] == [7]
        assert [s.number for s in index.resolve("REQ-7")] == [7]

    def test_unresolvable(self, index):
        assert index.resolve("999") == []
        assert index.resolve("no digits") == []
        assert index.resolve("") == []
        assert index.resolve(None) == []

    def test_custom_id_disables_digit_fallback(self):
        index = StoryIndex([Story(number=12, title="MS-005: Login")])

        assert index.resolve("5") == []
        assert index.resolve("012") == []
        assert [s.number for s in index.resolve("MS-005")] == [12]

    def test_custom_id_lookup(self, index):
        stories = {s.number: s for s in index.stories}
        assert index.custom_id(stories[12]) == "MS-005"
        assert index.custom_id(stories[5]) is None
        assert "MS-005" in index.keys(stories[12])
