"""
Traceability matrix: stories joined to their test cases, latest results
and defects, plus the gaps where a cross-reference is missing.

build_matrix is a pure function of its inputs apart from the fetched_at
stamp. MatrixService wires it to the sources and caches the result.
"""

import logging
from typing import Callable, Hashable, Iterable, Mapping, Optional

from qatrace.lib.cache import TTLCache
from qatrace.lib.constants import RESULT_FAIL, RESULT_PASS
from qatrace.ledger.latest import LatestIndex, utc_now_iso
from qatrace.ledger.models import LatestPointer
from qatrace.trace.models import (
    Defect,
    DefectSummary,
    Gaps,
    Matrix,
    MatrixEntry,
    MatrixTest,
    Story,
    StoryMetrics,
    TestCase,
)
from qatrace.trace.resolver import StoryIndex
from qatrace.trace.sources import IssueSource, TestCaseSource

logger = logging.getLogger(__name__)


def coverage_percent(passed: int, total: int) -> float:
    """passed / total as a percentage, rounded half-up to one decimal."""
    if total <= 0:
        return 0.0
    tenths = (passed * 2000 + total) // (2 * total)
    return tenths / 10


def story_metrics(tests: list[MatrixTest]) -> StoryMetrics:
    passed = sum(1 for t in tests if t.latest and t.latest.result == RESULT_PASS)
    failed = sum(1 for t in tests if t.latest and t.latest.result == RESULT_FAIL)
    return StoryMetrics(
        test_count=len(tests),
        passed=passed,
        failed=failed,
        no_run=len(tests) - passed - failed,
        coverage_percent=coverage_percent(passed, len(tests)),
    )


def build_matrix(
    stories: Iterable[Story],
    tests: Iterable[TestCase],
    defects: Iterable[Defect],
    latest: Mapping[str, LatestPointer],
    fetched_at: Optional[str] = None,
    malformed: Iterable[str] = (),
) -> Matrix:
    """Join stories, tests and defects.

    Args:
        stories: Story issues, in display order
        tests: Test cases with their raw story references
        defects: Defects with parsed links
        latest: Latest result per test path; missing means never run
        fetched_at: Stamp recorded on the result
        malformed: Paths of run records skipped while reading latest results
    """
    stories = list(stories)
    tests = list(tests)
    defects = list(defects)
    index = StoryIndex(stories)

    tests_by_story: dict[int, list[TestCase]] = {}
    gaps = Gaps()
    for test in tests:
        matched = index.resolve(test.story_ref)
        if not matched:
            gaps.tests_without_story.append(test.path)
        for story in matched:
            tests_by_story.setdefault(story.number, []).append(test)

    defects_by_story: dict[int, list[DefectSummary]] = {}
    defects_by_test: dict[str, list[DefectSummary]] = {}
    for defect in defects:
        links = defect.links
        if not links.story_ref and not links.test_path:
            gaps.defects_without_link.append(defect.number)
        summary = DefectSummary.of(defect)
        for story in index.resolve(links.story_ref):
            defects_by_story.setdefault(story.number, []).append(summary)
        if links.test_path:
            defects_by_test.setdefault(links.test_path.strip(), []).append(summary)

    entries = []
    for story in stories:
        matched_tests = [
            MatrixTest(
                path=test.path,
                title=test.title or test.name,
                assigned_to=test.assigned_to,
                latest=latest.get(test.path),
                defects=list(defects_by_test.get(test.path, [])),
                url=test.url,
            )
            for test in tests_by_story.get(story.number, [])
        ]
        if not matched_tests:
            gaps.stories_without_tests.append(story.number)

        entries.append(MatrixEntry(
            number=story.number,
            key=f"US-{story.number}",
            title=story.title,
            custom_id=index.custom_id(story),
            state=story.state,
            url=story.url,
            assignees=list(story.assignees),
            labels=list(story.labels),
            milestone=story.milestone,
            tests=matched_tests,
            defects=list(defects_by_story.get(story.number, [])),
            metrics=story_metrics(matched_tests),
        ))

    return Matrix(stories=entries, gaps=gaps, malformed=sorted(malformed), fetched_at=fetched_at)


class MatrixService:
    """Loads the sources, builds the matrix and caches it for a short TTL."""

    def __init__(
        self,
        issues: IssueSource,
        test_cases: TestCaseSource,
        index: LatestIndex,
        cache: TTLCache,
        cache_key: Hashable,
        now: Callable[[], str] = utc_now_iso,
    ):
        self.issues = issues
        self.test_cases = test_cases
        self.index = index
        self.cache = cache
        self.cache_key = cache_key
        self._now = now

    def get_matrix(self, force_refresh: bool = False) -> Matrix:
        """Return the cached matrix, or build a fresh one.

        Raises:
            UpstreamUnavailable / StoreRequestError: if a source can't be read
        """
        if not force_refresh:
            cached = self.cache.get(self.cache_key)
            if cached is not None:
                return cached

        stories, defects = self.issues.load()
        # One tree listing serves both test case discovery and latest runs
        # when tests and runs share a repository
        paths = self.test_cases.store.list_tree()
        test_cases = self.test_cases.load(paths)
        runs_paths = paths if self.index.store is self.test_cases.store else None
        snapshot = self.index.latest_from_snapshot(self.index.snapshot_from_tree(runs_paths))

        matrix = build_matrix(
            stories, test_cases, defects, snapshot.latest,
            fetched_at=self._now(),
            malformed=[e.path for e in snapshot.malformed],
        )
        self.cache.set(self.cache_key, matrix)
        logger.info(
            f"Built traceability matrix: {len(matrix.stories)} stories, "
            f"{len(test_cases)} test cases, {len(defects)} defects"
        )
        if matrix.malformed:
            logger.warning(f"Matrix skipped {len(matrix.malformed)} malformed run record(s)")
        return matrix

    def invalidate(self) -> None:
        self.cache.invalidate(self.cache_key)


def matrix_cache_key(stories_repo: str, testcases_repo: str, branch: str) -> tuple[str, str, str]:
    return (stories_repo, testcases_repo, branch)
