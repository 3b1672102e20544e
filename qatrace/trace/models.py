"""
Data models for traceability.

Stories, test cases and defects are read-only inputs owned by the authoring
side; matrix types are derived and never persisted.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional

from qatrace.ledger.models import LatestPointer


@dataclass
class Story:
    """A story issue."""
    number: int
    title: str
    body: str = ""
    state: str = "open"
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    milestone: Optional[str] = None
    url: str = ""


@dataclass
class TestCase:
    """A test case file and its frontmatter."""
    __test__ = False  # not a pytest class

    path: str
    title: str = ""
    story_ref: Optional[str] = None   # free text, e.g. "MS-005", "#12", "12"
    suite: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    status: Optional[str] = None
    url: str = ""

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass
class DefectLinks:
    """References parsed from a defect's body."""
    story_ref: Optional[str] = None
    test_path: Optional[str] = None


@dataclass
class Defect:
    """A defect issue."""
    number: int
    title: str
    state: str = "open"
    url: str = ""
    links: DefectLinks = field(default_factory=DefectLinks)


@dataclass
class DefectSummary:
    number: int
    title: str
    state: str
    url: str

    @classmethod
    def of(cls, defect: Defect) -> "DefectSummary":
        return cls(number=defect.number, title=defect.title, state=defect.state, url=defect.url)


@dataclass
class MatrixTest:
    """A test matched to a story, with its latest result and defects."""
    path: str
    title: str
    assigned_to: Optional[str]
    latest: Optional[LatestPointer]
    defects: list[DefectSummary] = field(default_factory=list)
    url: str = ""


@dataclass
class StoryMetrics:
    test_count: int = 0
    passed: int = 0
    failed: int = 0
    no_run: int = 0
    coverage_percent: float = 0.0


@dataclass
class MatrixEntry:
    """One story row of the traceability matrix."""
    number: int
    key: str
    title: str
    custom_id: Optional[str] = None
    state: str = "open"
    url: str = ""
    assignees: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    milestone: Optional[str] = None
    tests: list[MatrixTest] = field(default_factory=list)
    defects: list[DefectSummary] = field(default_factory=list)
    metrics: StoryMetrics = field(default_factory=StoryMetrics)


@dataclass
class Gaps:
    """Cross-references that are missing."""
    stories_without_tests: list[int] = field(default_factory=list)
    tests_without_story: list[str] = field(default_factory=list)
    defects_without_link: list[int] = field(default_factory=list)


@dataclass
class Matrix:
    stories: list[MatrixEntry] = field(default_factory=list)
    gaps: Gaps = field(default_factory=Gaps)
    # Run records that could not be decoded while building
    malformed: list[str] = field(default_factory=list)
    fetched_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)
