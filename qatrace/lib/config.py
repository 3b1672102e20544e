"""
Configuration loaders for qatrace.

Loads project configuration from project.env (with QATRACE_* environment
overrides) and the optional multi-project list from projects.yaml.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import yaml

from . import envparse
from . import validate
from .constants import (
    DEFAULT_BACKOFF_BASE_MS,
    DEFAULT_BACKOFF_CAP_MS,
    DEFAULT_BRANCH,
    DEFAULT_DEFECT_LABEL,
    DEFAULT_MATRIX_TTL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RUNS_LIMIT,
    DEFAULT_RUNS_ROOT,
    DEFAULT_TESTCASES_ROOT,
    MAX_RUNS_LIMIT,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Backoff settings for run record writes."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_ms: int = DEFAULT_BACKOFF_BASE_MS
    cap_ms: int = DEFAULT_BACKOFF_CAP_MS

    def delay_seconds(self, retry_number: int) -> float:
        """Delay before the given retry (1-based): base * 2^(n-1), capped."""
        delay_ms = min(self.base_ms * (2 ** (retry_number - 1)), self.cap_ms)
        return delay_ms / 1000.0


@dataclass
class ProjectConfig:
    """Project-level configuration from project.env"""
    name: str
    stories_repo: str        # owner/name
    testcases_repo: str      # owner/name
    branch: str = DEFAULT_BRANCH
    runs_root: str = DEFAULT_RUNS_ROOT
    testcases_root: str = DEFAULT_TESTCASES_ROOT
    defect_label: str = DEFAULT_DEFECT_LABEL
    matrix_cache_ttl: int = DEFAULT_MATRIX_TTL_SECONDS
    runs_list_limit: int = DEFAULT_RUNS_LIMIT
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class ProjectEntry:
    """One entry of projects.yaml."""
    id: str
    name: str
    stories_repo: Optional[str] = None
    testcases_repo: Optional[str] = None


def parse_repo(value: str) -> tuple[str, str]:
    """
    Split a repository reference into (owner, name).

    Accepts "owner/name" or a github.com URL, optionally ending in ".git".

    Raises:
        ValueError: if the reference can't be parsed
    """
    value = (value or "").strip()
    if "github.com" in value:
        if "://" not in value:
            value = f"https://{value}"
        path = urlparse(value).path.strip("/")
        if path.endswith(".git"):
            path = path[:-4]
        parts = path.split("/")
        if len(parts) >= 2 and parts[-2] and parts[-1]:
            return parts[-2], parts[-1]
        raise ValueError(f"Invalid repository URL: {value}")

    parts = value.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid repository '{value}'. Use \"owner/name\" or a full GitHub URL.")
    return parts[0], parts[1]


def normalize_repo(value: str) -> str:
    """Return the "owner/name" form of a repository reference."""
    owner, name = parse_repo(value)
    return f"{owner}/{name}"


def _int_setting(env: dict, key: str, default: int, minimum: int = 0,
                 maximum: Optional[int] = None) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {key} '{raw}', using default {default}")
        return default
    if value < minimum:
        logger.warning(f"{key}={value} below minimum {minimum}, using {minimum}")
        return minimum
    if maximum is not None and value > maximum:
        logger.warning(f"{key}={value} above maximum {maximum}, using {maximum}")
        return maximum
    return value


def config_from_env(env: dict) -> ProjectConfig:
    """Build ProjectConfig from an already-parsed env dict.

    Raises:
        KeyError: if a required key is missing
        ValueError: if a repository reference is invalid
    """
    return ProjectConfig(
        name=env["PROJECT_NAME"],
        stories_repo=normalize_repo(env["STORIES_REPO"]),
        testcases_repo=normalize_repo(env["TESTCASES_REPO"]),
        branch=env.get("BRANCH") or DEFAULT_BRANCH,
        runs_root=(env.get("RUNS_ROOT") or DEFAULT_RUNS_ROOT).strip("/"),
        testcases_root=(env.get("TESTCASES_ROOT") or DEFAULT_TESTCASES_ROOT).strip("/"),
        defect_label=env.get("DEFECT_LABEL") or DEFAULT_DEFECT_LABEL,
        matrix_cache_ttl=_int_setting(env, "MATRIX_CACHE_TTL", DEFAULT_MATRIX_TTL_SECONDS),
        runs_list_limit=_int_setting(env, "RUNS_LIST_LIMIT", DEFAULT_RUNS_LIMIT, 1, MAX_RUNS_LIMIT),
        retry=RetryPolicy(
            max_attempts=_int_setting(env, "WRITE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS, 1),
            base_ms=_int_setting(env, "WRITE_BACKOFF_BASE_MS", DEFAULT_BACKOFF_BASE_MS),
            cap_ms=_int_setting(env, "WRITE_BACKOFF_CAP_MS", DEFAULT_BACKOFF_CAP_MS),
        ),
    )


def load_project_config(project_dir: Path, environ=None) -> ProjectConfig:
    """Load project.env and return ProjectConfig."""
    env = envparse.load_env(str(project_dir / "project.env"), environ)
    return config_from_env(env)


def load_projects(project_dir: Optional[Path]) -> list[ProjectEntry]:
    """Load projects.yaml and return the valid entries.

    Returns an empty list if project_dir is None, the file is missing, or
    the file can't be parsed.
    """
    if project_dir is None:
        return []

    path = project_dir / "projects.yaml"
    if not path.exists():
        return []

    try:
        data = yaml.safe_load(path.read_text()) or {}
        validate.validate(data, "projects")
    except (yaml.YAMLError, validate.ValidationError) as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return []

    entries = []
    for item in data.get("projects") or []:
        entry_id = str(item.get("id") or "").strip()
        name = str(item.get("name") or "").strip()
        if not entry_id or not name:
            logger.warning(f"Skipping project entry without id/name in {path}: {item}")
            continue
        entries.append(ProjectEntry(
            id=entry_id,
            name=name,
            stories_repo=(item.get("stories_repo") or "").strip() or None,
            testcases_repo=(item.get("testcases_repo") or "").strip() or None,
        ))
    return entries


def resolve_project(
    base: ProjectConfig,
    projects: list[ProjectEntry],
    selected_id: Optional[str] = None,
) -> ProjectConfig:
    """Return the config for the selected project.

    Falls back to the first listed project, then to the base config. Repos
    missing on the entry are inherited from the base config.
    """
    entry = None
    if selected_id:
        entry = next((p for p in projects if p.id == selected_id), None)
        if entry is None:
            logger.warning(f"Unknown project '{selected_id}', using default")
    if entry is None and projects:
        entry = projects[0]
    if entry is None:
        return base

    return replace(
        base,
        name=entry.name,
        stories_repo=normalize_repo(entry.stories_repo) if entry.stories_repo else base.stories_repo,
        testcases_repo=normalize_repo(entry.testcases_repo) if entry.testcases_repo else base.testcases_repo,
    )
