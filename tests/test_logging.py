from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import pytest

from docpilot.utils import logging as logging_utils


@pytest.fixture
def fresh_logging(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(logging_utils, "_CONFIGURED", False)
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()


def test_setup_writes_to_rotating_file(tmp_path: Path, fresh_logging) -> None:
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    logging_utils.get_logger("docpilot.test").info("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path == tmp_path / "docpilot.log"
    assert logging_utils.get_log_path() == path
    assert "hello from the test" in path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_log_dir_from_environment(tmp_path: Path, fresh_logging, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(logging_utils.LOG_DIR_ENV, str(tmp_path / "env-logs"))

    path = logging_utils.setup_logging(console=False)

    assert path.parent == tmp_path / "env-logs"


def test_second_call_is_a_no_op_unless_forced(tmp_path: Path, fresh_logging) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False)

    assert logging_utils.setup_logging(log_dir=tmp_path / "b", console=False) == first
    forced = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False, force=True)
    assert forced == tmp_path / "b" / "docpilot.log"


def test_records_are_tagged_with_the_current_turn(tmp_path: Path, fresh_logging) -> None:
    path = logging_utils.setup_logging(log_dir=tmp_path, console=False)
    logger = logging_utils.get_logger("docpilot.test")

    with logging_utils.turn_logging("doc-1", 3) as label:
        assert logging_utils.current_turn() == "doc-1#3"
        logger.warning("inside the turn")
    logger.warning("after the turn")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert label == "doc-1#3"
    assert logging_utils.current_turn() == "-"
    lines = path.read_text(encoding="utf-8").splitlines()
    assert any("[doc-1#3]" in line and "inside the turn" in line for line in lines)
    assert any("[-]" in line and "after the turn" in line for line in lines)


def test_turn_label_without_document() -> None:
    with logging_utils.turn_logging(None, 1) as label:
        assert label == "no-document#1"
