"""
Project context: wires configuration to stores and services.
"""

from dataclasses import dataclass, field
from typing import Optional

from qatrace.lib.cache import TTLCache
from qatrace.lib.config import ProjectConfig
from qatrace.lib.github import GitHubStore
from qatrace.ledger.batch import BatchSubmitter
from qatrace.ledger.latest import LatestIndex
from qatrace.ledger.recorder import RunRecorder
from qatrace.trace.matrix import MatrixService, matrix_cache_key
from qatrace.trace.sources import IssueSource, TestCaseSource


@dataclass
class ProjectContext:
    """Stores and services for one project.

    stories_store holds issues (stories and defects); testcases_store holds
    both test case files and run records.
    """
    project: ProjectConfig
    stories_store: object
    testcases_store: object
    cache: Optional[TTLCache] = None
    _index: Optional[LatestIndex] = field(default=None, repr=False)

    @classmethod
    def create(cls, project: ProjectConfig, cache: Optional[TTLCache] = None) -> 'ProjectContext':
        """Create a context backed by GitHub through the gh CLI."""
        return cls(
            project=project,
            stories_store=GitHubStore(project.stories_repo, project.branch),
            testcases_store=GitHubStore(project.testcases_repo, project.branch),
            cache=cache,
        )

    def __post_init__(self):
        if self.cache is None:
            self.cache = TTLCache(self.project.matrix_cache_ttl)

    @property
    def index(self) -> LatestIndex:
        if self._index is None:
            self._index = LatestIndex(self.testcases_store, self.project.runs_root)
        return self._index

    def recorder(self, executed_by: Optional[str] = None, **kwargs) -> RunRecorder:
        """Recorder attributed to executed_by, or to the authenticated gh user."""
        if executed_by is None:
            executed_by = self.testcases_store.get_authenticated_login()
        return RunRecorder(
            self.testcases_store,
            executed_by,
            runs_root=self.project.runs_root,
            index=self.index,
            retry=self.project.retry,
            **kwargs,
        )

    def batch(self, executed_by: Optional[str] = None, **kwargs) -> BatchSubmitter:
        return BatchSubmitter(self.recorder(executed_by), **kwargs)

    def list_runs(self, test_path: str, limit: Optional[int] = None):
        return self.index.list_runs(test_path, limit or self.project.runs_list_limit)

    def matrix_service(self) -> MatrixService:
        project = self.project
        return MatrixService(
            issues=IssueSource(self.stories_store, project.defect_label, project.testcases_root),
            test_cases=TestCaseSource(
                self.testcases_store,
                project.testcases_root,
                blob_url_base=f"https://github.com/{project.testcases_repo}/blob/{project.branch}",
            ),
            index=self.index,
            cache=self.cache,
            cache_key=matrix_cache_key(project.stories_repo, project.testcases_repo, project.branch),
        )
