"""
Traceability between stories, test cases, runs and defects.
"""

from qatrace.trace.frontmatter import parse_defect_links, parse_frontmatter, parse_test_case
from qatrace.trace.matrix import MatrixService, build_matrix, coverage_percent
from qatrace.trace.models import (
    Defect,
    DefectLinks,
    DefectSummary,
    Gaps,
    Matrix,
    MatrixEntry,
    MatrixTest,
    Story,
    StoryMetrics,
    TestCase,
)
from qatrace.trace.resolver import StoryIndex, extract_custom_id, story_keys
from qatrace.trace.sources import IssueSource, TestCaseSource

__all__ = [
    "Defect",
    "DefectLinks",
    "DefectSummary",
    "Gaps",
    "IssueSource",
    "Matrix",
    "MatrixEntry",
    "MatrixService",
    "MatrixTest",
    "Story",
    "StoryIndex",
    "StoryMetrics",
    "TestCase",
    "TestCaseSource",
    "build_matrix",
    "coverage_percent",
    "extract_custom_id",
    "parse_defect_links",
    "parse_frontmatter",
    "parse_test_case",
    "story_keys",
]
