from __future__ import annotations

import pytest

from docpilot.ai.intent.followup import is_follow_up, is_refinement, mentions_tone

FOLLOW_UPS = [
    "再改短一点",
    "再简洁些",
    "继续",
    "接着改",
    "再改一版",
    "make it shorter",
    "again please",
    "more formal",
]


@pytest.mark.parametrize("text", FOLLOW_UPS)
def test_follow_up_phrases(text):
    assert is_follow_up(text)


@pytest.mark.parametrize("text", FOLLOW_UPS)
def test_every_follow_up_is_a_refinement(text):
    assert is_refinement(text)


@pytest.mark.parametrize("text", ["帮我改写第一章", "总结一下", "", "   "])
def test_not_follow_up(text):
    assert not is_follow_up(text)


def test_refinement_keywords_without_follow_up_phrasing():
    assert is_refinement("换个说法")
    assert is_refinement("调整一下结构")
    assert not is_follow_up("换个说法")
    assert not is_refinement("改写第一章")
    assert not is_refinement("")


def test_mentions_tone():
    assert mentions_tone("语气正式一点")
    assert mentions_tone("Change the TONE")
    assert not mentions_tone("缩短一些")


@pytest.mark.parametrize("text", ["更正式一点", "换成列表", "change the wording", "Rephrase it"])
def test_refinement_phrases(text):
    assert is_refinement(text)


@pytest.mark.parametrize(
    "text",
    [
        "summarize the exchange rates section",
        "tell me more about the document",
        "总结一下整篇文档",
        "更新日志放在哪里",
        "换行符有问题吗",
    ],
)
def test_broad_substrings_are_not_refinements(text):
    assert not is_refinement(text)
