"""
Story reference resolution.

A story can be referred to by its issue number in several renderings
("12", "#12", "US-12") or by a human-authored ID such as "MS-005" found at
the start of its title or in a header field of its body. Test cases and
defects carry free-text references in any of these forms.

Resolution tries exact key matches first. Only when nothing matches
exactly does it compare the first run of digits in the reference with
issue numbers, and only for stories without a custom ID: "5" must never
reach the story titled "MS-005: ..." through its digits.
"""

import re
from typing import Iterable, Optional

from qatrace.trace.models import Story

CUSTOM_ID_RE = re.compile(r'^[A-Za-z]+(?:-[A-Za-z]+)*-\d+$')

_ID_VALUE = r'([A-Za-z]+(?:-[A-Za-z]+)*-\d+)\b'
BODY_FIELD_RE = re.compile(
    r'^[\s>*_-]*(?:story[ _-]?id|id)[\s*_]*:[\s*_]*' + _ID_VALUE,
    re.IGNORECASE | re.MULTILINE,
)
BODY_HEADING_RE = re.compile(
    r'^#{1,6}\s*(?:story[ _-]?id|id)\s*$\s*^\s*' + _ID_VALUE,
    re.IGNORECASE | re.MULTILINE,
)
DIGITS_RE = re.compile(r'\d+')

NUMBER_PREFIXES = ("US-", "STORY-", "ISSUE-", "GH-")


def normalize_ref(ref: Optional[str]) -> str:
    return (ref or "").strip().upper()


def _title_token(title: str) -> str:
    parts = (title or "").split(None, 1)
    if not parts:
        return ""
    return parts[0].strip("[]()").rstrip(":-.")


def extract_custom_id(title: str, body: Optional[str] = None) -> Optional[str]:
    """Find a story's human-authored ID, upper-cased.

    The title's leading token wins; otherwise the body is searched for a
    "Story ID:" / "ID:" field or a "### Story ID" heading followed by the value.
    """
    token = _title_token(title)
    if CUSTOM_ID_RE.match(token):
        return token.upper()

    if body:
        for pattern in (BODY_FIELD_RE, BODY_HEADING_RE):
            m = pattern.search(body)
            if m:
                return m.group(1).upper()
    return None


def story_keys(number: int, custom_id: Optional[str] = None) -> set[str]:
    """Every normalized form a reference to this story may take."""
    keys = {str(number), f"#{number}"}
    keys.update(f"{prefix}{number}" for prefix in NUMBER_PREFIXES)
    if custom_id:
        keys.add(normalize_ref(custom_id))
    return keys


def first_number(ref: Optional[str]) -> Optional[int]:
    m = DIGITS_RE.search(ref or "")
    return int(m.group(0)) if m else None


class StoryIndex:
    """Lookup from free-text references to stories."""

    def __init__(self, stories: Iterable[Story]):
        self.stories = list(stories)
        self._custom_ids: dict[int, Optional[str]] = {}
        self._by_key: dict[str, list[Story]] = {}

        for story in self.stories:
            custom_id = extract_custom_id(story.title, story.body)
            self._custom_ids[story.number] = custom_id
            for key in story_keys(story.number, custom_id):
                self._by_key.setdefault(key, []).append(story)

    def custom_id(self, story: Story) -> Optional[str]:
        return self._custom_ids.get(story.number)

    def keys(self, story: Story) -> set[str]:
        return story_keys(story.number, self.custom_id(story))

    def resolve(self, ref: Optional[str]) -> list[Story]:
        """Stories a reference points at; empty when it points nowhere."""
        key = normalize_ref(ref)
        if not key:
            return []

        exact = self._by_key.get(key)
        if exact:
            return list(exact)

        number = first_number(key)
        if number is None:
            return []
        return [
            story for story in self.stories
            if story.number == number and self._custom_ids.get(story.number) is None
        ]
