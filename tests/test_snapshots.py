"""Tests for section snapshots used by undo."""

from __future__ import annotations

import pytest

from docpilot.ai.orchestration.snapshots import SnapshotStore

from tests.helpers import make_document, paragraph_text, replace_op


def test_capture_and_restore_subtree():
    document = make_document()
    store = SnapshotStore()

    snapshot = store.capture(document, "sec-4")
    document.apply_mutation([replace_op("p-4", "新的方案。"), replace_op("p-5", "新的数据流。")])

    assert snapshot.paragraph_count == 2
    assert store.restore(document, snapshot.id) is True
    assert paragraph_text(document, "p-4") == "系统由意图识别和执行两部分组成。"
    assert paragraph_text(document, "p-5") == "用户输入先经过规则匹配，再交给模型。"
    assert snapshot.id not in store


def test_restore_rejects_other_document():
    store = SnapshotStore()
    snapshot = store.capture(make_document("doc-1"), "sec-3")

    assert store.restore(make_document("doc-2"), snapshot.id) is False
    assert snapshot.id in store


def test_unknown_section_raises():
    with pytest.raises(KeyError):
        SnapshotStore().capture(make_document(), "sec-99")


def test_discard():
    document = make_document()
    store = SnapshotStore()
    first = store.capture(document, "sec-2")
    store.capture(document, "sec-3")
    store.capture(make_document("doc-2"), "sec-3")

    assert store.discard(first.id) is first
    assert store.discard(None) is None
    assert store.restore(document, first.id) is False
    assert store.discard_document("doc-1") == 1
    assert len(store) == 1
