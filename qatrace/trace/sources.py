"""
Loading stories, defects and test cases from their repositories.
"""

import logging
from typing import Optional

from qatrace.lib.constants import DEFAULT_DEFECT_LABEL, DEFAULT_TESTCASES_ROOT
from qatrace.lib.errors import NotFound
from qatrace.trace.frontmatter import parse_defect_links, parse_test_case
from qatrace.trace.models import Defect, Story, TestCase

logger = logging.getLogger(__name__)


def _label_names(issue: dict) -> list[str]:
    names = []
    for label in issue.get("labels") or []:
        name = label.get("name") if isinstance(label, dict) else label
        if name:
            names.append(str(name))
    return names


def story_from_issue(issue: dict) -> Story:
    milestone = issue.get("milestone")
    return Story(
        number=int(issue["number"]),
        title=issue.get("title") or "",
        body=issue.get("body") or "",
        state=issue.get("state") or "open",
        labels=_label_names(issue),
        assignees=[a["login"] for a in issue.get("assignees") or [] if a.get("login")],
        milestone=milestone.get("title") if isinstance(milestone, dict) else None,
        url=issue.get("html_url") or "",
    )


class IssueSource:
    """Stories and defects from the stories repository's issues."""

    def __init__(self, store, defect_label: str = DEFAULT_DEFECT_LABEL,
                 testcases_root: str = DEFAULT_TESTCASES_ROOT):
        self.store = store
        self.defect_label = defect_label
        self.testcases_root = testcases_root

    def is_defect(self, issue: dict) -> bool:
        wanted = self.defect_label.lower()
        return any(name.lower() == wanted for name in _label_names(issue))

    def load(self) -> tuple[list[Story], list[Defect]]:
        """Fetch every issue (open and closed) and split stories from defects.

        Pull requests come back from the issues endpoint too and are dropped.
        """
        stories, defects = [], []
        for issue in self.store.fetch_issues("all"):
            if issue.get("pull_request"):
                continue
            if "number" not in issue:
                logger.warning("Skipping issue payload without a number")
                continue
            if self.is_defect(issue):
                defects.append(Defect(
                    number=int(issue["number"]),
                    title=issue.get("title") or "",
                    state=issue.get("state") or "open",
                    url=issue.get("html_url") or "",
                    links=parse_defect_links(issue.get("body"), self.testcases_root),
                ))
            else:
                stories.append(story_from_issue(issue))

        logger.debug(f"Loaded {len(stories)} stories and {len(defects)} defects")
        return stories, defects


class TestCaseSource:
    """Test case files under the test case root of a repository."""
    __test__ = False  # not a pytest class

    def __init__(self, store, testcases_root: str = DEFAULT_TESTCASES_ROOT,
                 blob_url_base: str = ""):
        self.store = store
        self.testcases_root = testcases_root.rstrip("/")
        self.blob_url_base = blob_url_base.rstrip("/")

    def is_test_case(self, path: str) -> bool:
        return path.startswith(self.testcases_root + "/") and path.endswith(".md")

    def url_for(self, path: str) -> str:
        return f"{self.blob_url_base}/{path}" if self.blob_url_base else ""

    def load(self, paths: Optional[list[str]] = None) -> list[TestCase]:
        """Read and parse every test case file.

        Args:
            paths: Blob paths from a tree listing already in hand; listed
                from the store when omitted
        """
        if paths is None:
            paths = self.store.list_tree()

        test_cases = []
        for path in sorted(p for p in paths if self.is_test_case(p)):
            try:
                obj = self.store.get(path)
            except NotFound:
                logger.warning(f"Test case {path} disappeared before it could be read")
                continue
            test_cases.append(parse_test_case(path, obj.content, self.url_for(path)))
        return test_cases
