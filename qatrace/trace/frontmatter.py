"""
Frontmatter parsing for test case files and defect bodies.

Frontmatter is a YAML block between two `---` lines at the top of a
markdown document. Hand-edited files often carry YAML that doesn't parse
(unquoted colons, stray tabs), so a per-line `key: value` scan is used
when the block fails to load.
"""

import logging
import re
from typing import Optional

import yaml

from qatrace.lib.constants import DEFAULT_TESTCASES_ROOT
from qatrace.trace.models import DefectLinks, TestCase

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r'^---[ \t]*\r?\n(.+?)\r?\n---', re.DOTALL)
LINE_RE = re.compile(r'^(\w[\w_-]*):\s*(?:["\'](.+?)["\']|(.+?))\s*$')
STORY_ID_RE = re.compile(r'story[_\s-]?id\s*:\s*([^\n\r]+)', re.IGNORECASE)


def _scan_lines(block: str) -> dict[str, str]:
    meta = {}
    for line in block.splitlines():
        m = LINE_RE.match(line)
        if m:
            meta[m.group(1)] = (m.group(2) or m.group(3) or "").strip()
    return meta


def parse_frontmatter(markdown: str) -> dict[str, str]:
    """Return frontmatter fields as strings. Empty dict if there is none."""
    if not markdown:
        return {}
    m = FRONTMATTER_RE.match(markdown)
    if not m:
        return {}
    block = m.group(1)

    try:
        # BaseLoader keeps every scalar a string; "007" must not become 7
        data = yaml.load(block, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        logger.debug(f"Frontmatter is not valid YAML, scanning lines: {e}")
        return _scan_lines(block)

    if not isinstance(data, dict):
        return _scan_lines(block)

    meta = {}
    for key, value in data.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        meta[str(key)] = str(value).strip()
    return meta


def _optional(meta: dict[str, str], key: str) -> Optional[str]:
    value = meta.get(key, "")
    return value or None


def parse_test_case(path: str, markdown: str, url: str = "") -> TestCase:
    """Build a TestCase from a test case file's path and content."""
    meta = parse_frontmatter(markdown)
    return TestCase(
        path=path,
        title=meta.get("title", ""),
        story_ref=_optional(meta, "story_id"),
        suite=_optional(meta, "suite"),
        priority=_optional(meta, "priority"),
        assigned_to=_optional(meta, "assigned_to"),
        status=_optional(meta, "status"),
        url=url,
    )


def parse_defect_links(body: Optional[str],
                       testcases_root: str = DEFAULT_TESTCASES_ROOT) -> DefectLinks:
    """Find the story reference and test case path a defect points at.

    Frontmatter `story_id` / `test_case` win; otherwise the body is searched
    for a `story id:` line and a path under the test case root.
    """
    links = DefectLinks()
    if not body:
        return links

    meta = parse_frontmatter(body)
    links.story_ref = _optional(meta, "story_id")
    links.test_path = _optional(meta, "test_case")

    if not links.story_ref:
        m = STORY_ID_RE.search(body)
        if m:
            # "**Story ID:** MS-005" leaves emphasis markers around the value
            value = m.group(1).strip().strip("*_`").strip()
            links.story_ref = value or None

    if not links.test_path:
        path_re = re.compile(rf'({re.escape(testcases_root)}/[\w\-/]+\.md)', re.IGNORECASE)
        m = path_re.search(body)
        if m:
            links.test_path = m.group(1)

    return links
