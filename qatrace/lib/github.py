"""
GitHub-backed object store.

Uses the repository contents API (through the gh CLI) as a versioned blob
store: blob shas are versions, PUT/DELETE are conditioned on them, and the
git trees API provides full recursive listings.
"""

import base64
import json
import logging
import re
import subprocess
from typing import Optional
from urllib.parse import quote

from qatrace.lib.errors import (
    NotFound,
    StoreError,
    StoreRequestError,
    UpstreamUnavailable,
    VersionConflict,
)
from qatrace.lib.types import DirEntry, StoredObject

logger = logging.getLogger(__name__)


# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

UNKNOWN_LOGIN = "unknown"

_HTTP_STATUS_RE = re.compile(r'\(HTTP (\d{3})\)')


def classify_gh_error(path: str, stderr: str) -> StoreError:
    """Map a failed `gh api` call to the store error taxonomy."""
    message = (stderr or "").strip() or "gh api failed"
    match = _HTTP_STATUS_RE.search(message)
    if not match:
        # No HTTP status means the request never completed
        return UpstreamUnavailable(path, message)

    status = int(match.group(1))
    if status == 404:
        return NotFound(path, message)
    if status == 409:
        return VersionConflict(path, message)
    if status == 422 and "sha" in message.lower():
        return VersionConflict(path, message)
    if status >= 500 or status == 429:
        return UpstreamUnavailable(path, message)
    return StoreRequestError(path, message, status)


class GitHubStore:
    """Versioned blob store on top of one GitHub repository."""

    def __init__(self, repo: str, branch: str = "main", timeout: int = GH_TIMEOUT_SECONDS):
        self.repo = repo
        self.branch = branch
        self.timeout = timeout

    def _api(
        self,
        endpoint: str,
        path: str,
        method: str = "GET",
        body: Optional[dict] = None,
        jq: Optional[str] = None,
        paginate: bool = False,
    ) -> str:
        """Run `gh api` and return stdout, raising StoreError on failure."""
        cmd = ["gh", "api", "-X", method, endpoint,
               "-H", "Accept: application/vnd.github+json"]
        if paginate:
            cmd.append("--paginate")
        if jq:
            cmd.extend(["--jq", jq])
        if body is not None:
            cmd.extend(["--input", "-"])

        try:
            result = subprocess.run(
                cmd,
                input=json.dumps(body) if body is not None else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise UpstreamUnavailable(path, "GitHub API timeout") from None
        except FileNotFoundError:
            raise UpstreamUnavailable(path, "GitHub CLI (gh) not found") from None
        except subprocess.SubprocessError as e:
            raise UpstreamUnavailable(path, f"GitHub CLI failed: {e}") from None

        if result.returncode != 0:
            raise classify_gh_error(path, result.stderr)
        return result.stdout

    def _api_json(self, endpoint: str, path: str, method: str = "GET", body: Optional[dict] = None):
        output = self._api(endpoint, path, method=method, body=body)
        try:
            return json.loads(output) if output.strip() else {}
        except json.JSONDecodeError:
            raise UpstreamUnavailable(path, "Invalid JSON from gh") from None

    def _contents_endpoint(self, path: str) -> str:
        return f"repos/{self.repo}/contents/{quote(path, safe='/')}"

    def get(self, path: str, ref: Optional[str] = None) -> StoredObject:
        """Read a blob. Raises NotFound if absent (or if path is a directory)."""
        endpoint = f"{self._contents_endpoint(path)}?ref={quote(ref or self.branch, safe='')}"
        data = self._api_json(endpoint, path)
        if not isinstance(data, dict) or data.get("type") != "file":
            raise NotFound(path, "Not a file")

        raw = data.get("content") or ""
        content = base64.b64decode(raw).decode("utf-8", errors="replace")
        return StoredObject(path=path, content=content, version=data.get("sha", ""))

    def put(
        self,
        path: str,
        content: str,
        message: str,
        expected_version: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        """Create or update a blob. Returns the new version.

        Without expected_version the put only succeeds if the path is new.
        """
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch or self.branch,
        }
        if expected_version:
            body["sha"] = expected_version

        data = self._api_json(self._contents_endpoint(path), path, method="PUT", body=body)
        return (data.get("content") or {}).get("sha", "")

    def delete(self, path: str, version: str, message: str, branch: Optional[str] = None) -> None:
        """Delete a blob at the given version."""
        body = {
            "message": message,
            "sha": version,
            "branch": branch or self.branch,
        }
        self._api(self._contents_endpoint(path), path, method="DELETE", body=body)

    def list_directory(self, path: str) -> list[DirEntry]:
        """List a directory. Raises NotFound if it doesn't exist."""
        endpoint = f"{self._contents_endpoint(path)}?ref={quote(self.branch, safe='')}"
        data = self._api_json(endpoint, path)
        if not isinstance(data, list):
            raise NotFound(path, "Not a directory")

        return [
            DirEntry(
                name=item.get("name", ""),
                path=item.get("path", ""),
                type=item.get("type", ""),
                version=item.get("sha"),
            )
            for item in data
        ]

    def list_tree(self, ref: Optional[str] = None) -> list[str]:
        """Return every blob path in the tree at ref (default: branch)."""
        ref = ref or self.branch
        endpoint = f"repos/{self.repo}/git/trees/{quote(ref, safe='')}?recursive=1"
        data = self._api_json(endpoint, ref)
        if data.get("truncated"):
            logger.warning(f"Tree listing for {self.repo}@{ref} was truncated by GitHub")

        return [
            entry["path"]
            for entry in data.get("tree") or []
            if entry.get("type") == "blob" and isinstance(entry.get("path"), str)
        ]

    def fetch_issues(self, state: str = "all") -> list[dict]:
        """Fetch all issues (and pull requests) of the repository."""
        endpoint = f"repos/{self.repo}/issues?state={state}&per_page=100"
        output = self._api(endpoint, endpoint, paginate=True, jq=".[]")

        issues = []
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                issues.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning(f"Skipping unparseable issue line from {self.repo}")
        return issues

    def get_authenticated_login(self) -> str:
        """Return the login of the authenticated gh user, or "unknown"."""
        try:
            login = self._api("user", "user", jq=".login").strip()
        except StoreError as e:
            logger.warning(f"Could not determine GitHub login: {e}")
            return UNKNOWN_LOGIN
        return login or UNKNOWN_LOGIN
