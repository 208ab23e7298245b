"""Logging setup for the copilot runtime and its scripts.

Every record carries a ``turn`` attribute naming the document and turn being
resolved (``doc-1#3``), or ``-`` outside a turn, so one rotating log can be
read back per conversation.
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

__all__ = ["setup_logging", "get_logger", "get_log_path", "turn_logging", "current_turn", "LOG_DIR_ENV"]

LOG_DIR_ENV = "DOCPILOT_LOG_DIR"
_DEFAULT_LOG_DIR = Path.home() / ".docpilot" / "logs"
_LOG_FILE_NAME = "docpilot.log"
_LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(turn)s] %(name)s: %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_NO_TURN = "-"

_CURRENT_TURN: contextvars.ContextVar[str] = contextvars.ContextVar("docpilot_turn", default=_NO_TURN)
_CONFIGURED = False
_LOG_PATH: Path | None = None


class _TurnFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "turn"):
            record.turn = _CURRENT_TURN.get()
        return True


@contextmanager
def turn_logging(document_id: str | None, turn_index: int) -> Iterator[str]:
    """Tag log records emitted inside the block with ``document#turn``."""

    label = f"{document_id or 'no-document'}#{turn_index}"
    token = _CURRENT_TURN.set(label)
    try:
        yield label
    finally:
        _CURRENT_TURN.reset(token)


def current_turn() -> str:
    return _CURRENT_TURN.get()


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route the root logger to ``docpilot.log`` (and stderr when ``console``).

    Only the first call configures anything unless ``force`` is set. The
    active log path is returned in both cases.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    directory = Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / _LOG_FILE_NAME

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = logging.Formatter(_LOG_FORMAT, datefmt="%H:%M:%S")
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(_TurnFilter())

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    return _LOG_PATH
