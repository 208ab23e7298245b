"""Resolve structural references in user text against the document outline.

Handles "第一章" / "chapter 2" style positional references, "上一章" /
"下一章" relative references, section titles, and paragraph references such
as "上一段" or "第三段".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ...editor.document_model import OutlineEntry
from .types import ParagraphRef

LOGGER = logging.getLogger(__name__)

__all__ = [
    "MatchReason",
    "SectionMatch",
    "ParagraphReference",
    "parse_number",
    "chapter_entries",
    "resolve_section_by_user_text",
    "infer_paragraph_ref",
]

_CN_DIGITS = {"零": 0, "〇": 0, "一": 1, "二": 2, "两": 2, "三": 3, "四": 4, "五": 5, "六": 6, "七": 7, "八": 8, "九": 9}
_EN_NUMBERS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "last": -1,
}
_NUM = r"[零〇一二两三四五六七八九十\d]+"

_CHAPTER_INDEX_RE = re.compile(rf"第\s*({_NUM})\s*[章节]")
_CHAPTER_INDEX_EN_RE = re.compile(r"\b(?:chapter|section)\s+(\d+|[a-z]+)\b", re.IGNORECASE)
_ORDINAL_CHAPTER_EN_RE = re.compile(r"\b(first|second|third|fourth|fifth|last)\s+(?:chapter|section)\b", re.IGNORECASE)
_LAST_CHAPTER_RE = re.compile(r"最后\s*一\s*[章节]")
_PREVIOUS_CHAPTER_RE = re.compile(r"(上一[章节]|前一[章节]|previous (?:chapter|section))", re.IGNORECASE)
_NEXT_CHAPTER_RE = re.compile(r"(下一[章节]|后一[章节]|next (?:chapter|section))", re.IGNORECASE)
_QUOTED_RE = re.compile(r"[「『“\"'《](.+?)[」』”\"'》]")

_CURRENT_PARAGRAPH_RE = re.compile(r"(这一段落?|这段落?|当前段)")
_PREVIOUS_PARAGRAPH_RE = re.compile(r"(上一段|前一段|上段)")
_NEXT_PARAGRAPH_RE = re.compile(r"(下一段|后一段|下段)")
_NTH_PARAGRAPH_RE = re.compile(rf"第\s*({_NUM})\s*段")
_QUOTE_CHARS = "「」『』“”\"'《》 "


class MatchReason(str, Enum):
    INDEX = "index"
    EXACT_TITLE = "exact_title"
    PARTIAL_TITLE = "partial_title"
    KEYWORD = "keyword"
    NOT_FOUND = "not_found"


@dataclass(slots=True, frozen=True)
class SectionMatch:
    section_id: str | None
    reason: MatchReason

    @property
    def found(self) -> bool:
        return self.section_id is not None


@dataclass(slots=True, frozen=True)
class ParagraphReference:
    ref: ParagraphRef
    index: int | None = None


_NOT_FOUND = SectionMatch(None, MatchReason.NOT_FOUND)


def parse_number(token: str) -> int | None:
    """Parse Arabic digits or a Chinese numeral below one hundred."""

    token = (token or "").strip()
    if not token:
        return None
    if token.isdigit():
        return int(token)
    lowered = token.lower()
    if lowered in _EN_NUMBERS:
        return _EN_NUMBERS[lowered]
    if "十" in token:
        tens_part, _, units_part = token.partition("十")
        tens = _CN_DIGITS.get(tens_part, None) if tens_part else 1
        units = _CN_DIGITS.get(units_part, None) if units_part else 0
        if tens is None or units is None:
            return None
        return tens * 10 + units
    if len(token) == 1 and token in _CN_DIGITS:
        return _CN_DIGITS[token]
    return None


def chapter_entries(outline: Sequence[OutlineEntry]) -> list[OutlineEntry]:
    """Return the entries that count as chapters for positional references.

    The shallowest heading level is the chapter level, unless it holds a
    single document title, in which case the next level down is used.
    """

    if not outline:
        return []
    levels = sorted({entry.level for entry in outline})
    chapter_level = levels[0]
    top = [entry for entry in outline if entry.level == chapter_level]
    if len(top) == 1 and len(levels) > 1:
        chapter_level = levels[1]
    return [entry for entry in outline if entry.level == chapter_level]


def resolve_section_by_user_text(
    text: str,
    outline: Sequence[OutlineEntry],
    *,
    last_section_id: str | None = None,
) -> SectionMatch:
    """Find the section a piece of user text refers to.

    Positional references win over title matching, so "第一章" resolves to the
    first chapter even when another heading is literally titled "第一章".
    """

    normalized = (text or "").strip()
    if not normalized or not outline:
        return _NOT_FOUND

    chapters = chapter_entries(outline)
    index_match = _match_index(normalized, chapters)
    if index_match is not None:
        return index_match

    relative = _match_relative(normalized, outline, last_section_id)
    if relative is not None:
        return relative

    return _match_title(normalized, outline)


def _match_index(text: str, chapters: Sequence[OutlineEntry]) -> SectionMatch | None:
    if not chapters:
        return None
    if _LAST_CHAPTER_RE.search(text):
        return SectionMatch(chapters[-1].section_id, MatchReason.INDEX)
    position: int | None = None
    match = _CHAPTER_INDEX_RE.search(text)
    if match:
        position = parse_number(match.group(1))
    else:
        match = _CHAPTER_INDEX_EN_RE.search(text) or _ORDINAL_CHAPTER_EN_RE.search(text)
        if match:
            position = parse_number(match.group(1))
    if position is None:
        return None
    if position == -1:
        return SectionMatch(chapters[-1].section_id, MatchReason.INDEX)
    if 1 <= position <= len(chapters):
        return SectionMatch(chapters[position - 1].section_id, MatchReason.INDEX)
    LOGGER.debug("Chapter index %s out of range (%d chapters)", position, len(chapters))
    return _NOT_FOUND


def _match_relative(text: str, outline: Sequence[OutlineEntry], last_section_id: str | None) -> SectionMatch | None:
    wants_previous = bool(_PREVIOUS_CHAPTER_RE.search(text))
    wants_next = bool(_NEXT_CHAPTER_RE.search(text))
    if not (wants_previous or wants_next):
        return None
    ids = [entry.section_id for entry in outline]
    if not last_section_id or last_section_id not in ids:
        return _NOT_FOUND
    position = ids.index(last_section_id) + (-1 if wants_previous else 1)
    if 0 <= position < len(ids):
        return SectionMatch(ids[position], MatchReason.INDEX)
    return _NOT_FOUND


def _match_title(text: str, outline: Sequence[OutlineEntry]) -> SectionMatch:
    bare = text.strip(_QUOTE_CHARS).lower()
    for entry in outline:
        if entry.title.strip().lower() == bare:
            return SectionMatch(entry.section_id, MatchReason.EXACT_TITLE)

    for quoted in _QUOTED_RE.findall(text):
        needle = quoted.strip().lower()
        if not needle:
            continue
        for entry in outline:
            title = entry.title.strip().lower()
            if title and (needle in title or title in needle):
                return SectionMatch(entry.section_id, MatchReason.PARTIAL_TITLE)

    lowered = text.lower()
    best: OutlineEntry | None = None
    for entry in outline:
        title = entry.title.strip().lower()
        if len(title) < 2 or title not in lowered:
            continue
        if best is None or len(title) > len(best.title.strip()):
            best = entry
    if best is not None:
        return SectionMatch(best.section_id, MatchReason.KEYWORD)
    return _NOT_FOUND


def infer_paragraph_ref(text: str) -> ParagraphReference | None:
    """Infer a paragraph reference such as "上一段" from user text."""

    if not text:
        return None
    if _CURRENT_PARAGRAPH_RE.search(text):
        return ParagraphReference(ParagraphRef.CURRENT)
    if _PREVIOUS_PARAGRAPH_RE.search(text):
        return ParagraphReference(ParagraphRef.PREVIOUS)
    if _NEXT_PARAGRAPH_RE.search(text):
        return ParagraphReference(ParagraphRef.NEXT)
    match = _NTH_PARAGRAPH_RE.search(text)
    if match:
        index = parse_number(match.group(1))
        if index is not None and index > 0:
            return ParagraphReference(ParagraphRef.NTH, index)
    return None
