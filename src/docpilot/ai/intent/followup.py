"""Continuation ("follow-up") and refinement detection.

Both the rule matcher and target resolution ask whether a turn continues the
last applied edit. They share this single policy:

* :func:`is_follow_up` matches explicit continuation phrasing ("再改短一点",
  "继续", "make it shorter"). Target resolution uses it as the last
  fallback after explicit ids, named sections and the current focus.
* :func:`is_refinement` is broader: any follow-up phrase, or one of the
  adjustment phrases ("再", "调整", "更正式", "change"). The matcher uses
  it, and only when a last edit exists for the current document.
"""

from __future__ import annotations

import re

__all__ = [
    "FOLLOW_UP_PATTERNS",
    "REFINEMENT_KEYWORDS",
    "REFINEMENT_PATTERNS",
    "TONE_KEYWORDS",
    "is_follow_up",
    "is_refinement",
    "mentions_tone",
]

FOLLOW_UP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"再.{0,4}(短|简洁|长|详细|正式|口语|专业|通俗|清晰|精炼)"),
    re.compile(r"^(继续|接着|然后)"),
    re.compile(r"^再改"),
    re.compile(r"^(again|retry)\b", re.IGNORECASE),
    re.compile(r"\b(shorter|longer|more (formal|casual|concise|detailed))\b", re.IGNORECASE),
)

REFINEMENT_KEYWORDS: tuple[str, ...] = (
    "再",
    "重新",
    "调整",
    "修改",
    "不对",
    "不行",
    "换个",
    "换一",
    "换种",
    "换成",
)

# English words only count as whole words ("exchange" is not "change").
REFINEMENT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"更(短|长|简|正式|口语|详细|专业|通俗|清晰|精炼|生动)"),
    re.compile(r"\b(again|retry|refine|adjust|change|rephrase)\b", re.IGNORECASE),
)

TONE_KEYWORDS: tuple[str, ...] = ("语气", "tone", "正式", "口语")


def is_follow_up(text: str) -> bool:
    stripped = (text or "").strip()
    if not stripped:
        return False
    return any(pattern.search(stripped) for pattern in FOLLOW_UP_PATTERNS)


def is_refinement(text: str) -> bool:
    if is_follow_up(text):
        return True
    lowered = (text or "").strip().lower()
    if not lowered:
        return False
    if any(keyword in lowered for keyword in REFINEMENT_KEYWORDS):
        return True
    return any(pattern.search(lowered) for pattern in REFINEMENT_PATTERNS)


def mentions_tone(text: str) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in TONE_KEYWORDS)
