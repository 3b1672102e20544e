"""
In-memory object store.

Implements the same contract as GitHubStore so the ledger can run without
a network. Failures can be injected per operation to simulate version
conflicts, concurrent writers and upstream outages.
"""

import hashlib
from dataclasses import dataclass
from typing import Callable, Optional

from qatrace.lib.errors import NotFound, StoreError, VersionConflict
from qatrace.lib.types import DirEntry, StoredObject


@dataclass
class _Injection:
    op: str
    error: StoreError
    times: int
    match: Optional[Callable[[str], bool]]
    create: bool  # put only: store the content before raising


class MemoryStore:
    """Dict-backed versioned store with failure injection."""

    def __init__(self, branch: str = "main", login: str = "tester"):
        self.branch = branch
        self.login = login
        self._objects: dict[str, tuple[str, str]] = {}
        self._injections: list[_Injection] = []
        self._counter = 0
        self.calls: list[tuple[str, str]] = []  # (op, path)
        self.issues: list[dict] = []  # raw issue payloads for fetch_issues

    # --- failure injection ---

    def inject(
        self,
        op: str,
        error: StoreError,
        times: int = 1,
        match: Optional[Callable[[str], bool]] = None,
        create: bool = False,
    ) -> None:
        """Make the next `times` calls of `op` fail with `error`.

        Args:
            op: "get", "put", "delete", "list_directory", "list_tree"
                or "fetch_issues"
            error: Error to raise
            times: Number of calls to fail
            match: Only fail calls whose path satisfies this predicate
            create: For put, store the object first (a concurrent writer won)
        """
        self._injections.append(_Injection(op, error, times, match, create))

    def _take_injection(self, op: str, path: str) -> Optional[_Injection]:
        for injection in self._injections:
            if injection.op != op or injection.times <= 0:
                continue
            if injection.match is not None and not injection.match(path):
                continue
            injection.times -= 1
            return injection
        return None

    def _next_version(self, content: str) -> str:
        self._counter += 1
        return hashlib.sha1(f"{self._counter}:{content}".encode("utf-8")).hexdigest()

    # --- store contract ---

    def get(self, path: str, ref: Optional[str] = None) -> StoredObject:
        self.calls.append(("get", path))
        injection = self._take_injection("get", path)
        if injection:
            raise injection.error
        if path not in self._objects:
            raise NotFound(path, "Not Found")
        content, version = self._objects[path]
        return StoredObject(path=path, content=content, version=version)

    def put(
        self,
        path: str,
        content: str,
        message: str,
        expected_version: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        self.calls.append(("put", path))
        injection = self._take_injection("put", path)
        if injection:
            if injection.create:
                self._objects[path] = (content, self._next_version(content))
            raise injection.error

        current = self._objects.get(path)
        if current is not None and expected_version != current[1]:
            raise VersionConflict(path, "sha does not match")
        if current is None and expected_version is not None:
            raise VersionConflict(path, "sha given for a new file")

        version = self._next_version(content)
        self._objects[path] = (content, version)
        return version

    def delete(self, path: str, version: str, message: str, branch: Optional[str] = None) -> None:
        self.calls.append(("delete", path))
        injection = self._take_injection("delete", path)
        if injection:
            raise injection.error
        if path not in self._objects:
            raise NotFound(path, "Not Found")
        if self._objects[path][1] != version:
            raise VersionConflict(path, "sha does not match")
        del self._objects[path]

    def list_directory(self, path: str) -> list[DirEntry]:
        self.calls.append(("list_directory", path))
        injection = self._take_injection("list_directory", path)
        if injection:
            raise injection.error

        prefix = path.rstrip("/") + "/"
        entries: dict[str, DirEntry] = {}
        for obj_path, (_, version) in self._objects.items():
            if not obj_path.startswith(prefix):
                continue
            rest = obj_path[len(prefix):]
            name, sep, _ = rest.partition("/")
            if sep:
                entries.setdefault(name, DirEntry(name=name, path=prefix + name, type="dir"))
            else:
                entries[name] = DirEntry(name=name, path=obj_path, type="file", version=version)

        if not entries:
            raise NotFound(path, "Not Found")
        return [entries[name] for name in sorted(entries)]

    def list_tree(self, ref: Optional[str] = None) -> list[str]:
        self.calls.append(("list_tree", ref or self.branch))
        injection = self._take_injection("list_tree", ref or self.branch)
        if injection:
            raise injection.error
        return sorted(self._objects)

    def fetch_issues(self, state: str = "all") -> list[dict]:
        self.calls.append(("fetch_issues", state))
        injection = self._take_injection("fetch_issues", state)
        if injection:
            raise injection.error
        if state == "all":
            return list(self.issues)
        return [i for i in self.issues if i.get("state", "open") == state]

    def get_authenticated_login(self) -> str:
        return self.login

    # --- test helpers ---

    def exists(self, path: str) -> bool:
        return path in self._objects

    def paths(self) -> list[str]:
        return sorted(self._objects)

    def count(self, op: str) -> int:
        return sum(1 for call_op, _ in self.calls if call_op == op)
