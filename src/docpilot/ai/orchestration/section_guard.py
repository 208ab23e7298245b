"""Mutual exclusion for section-scoped commands.

Only one section command may run at a time per orchestrator. Entry points
other than :meth:`ExecutionBridge.execute` (for example a selection-driven
trigger) check :attr:`SectionCommandGuard.is_running` before mutating.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from ...editor.document_model import now_ms

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GuardHolder:
    """Who currently holds the guard."""

    section_id: str | None
    label: str = ""
    acquired_at_ms: int = field(default_factory=now_ms)


class SectionBusyError(RuntimeError):
    """Raised by :meth:`SectionCommandGuard.hold` when the guard is taken."""

    def __init__(self, holder: GuardHolder) -> None:
        super().__init__(f"section command already running for {holder.section_id or 'document'}")
        self.holder = holder


class SectionCommandGuard:
    """Process-local "section command running" flag with an owner record."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._holder: GuardHolder | None = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._holder is not None

    @property
    def holder(self) -> GuardHolder | None:
        with self._lock:
            return self._holder

    def try_acquire(self, section_id: str | None, *, label: str = "") -> bool:
        with self._lock:
            if self._holder is not None:
                LOGGER.warning(
                    "Section guard busy: held for %s (%s)",
                    self._holder.section_id,
                    self._holder.label,
                )
                return False
            self._holder = GuardHolder(section_id=section_id, label=label)
            return True

    def release(self) -> None:
        with self._lock:
            self._holder = None

    @contextmanager
    def hold(self, section_id: str | None, *, label: str = "") -> Iterator[GuardHolder]:
        """Hold the guard for the duration of the ``with`` block.

        Raises:
            SectionBusyError: another section command is running.
        """

        with self._lock:
            current = self._holder
            if current is not None:
                raise SectionBusyError(current)
            held = GuardHolder(section_id=section_id, label=label)
            self._holder = held
        try:
            yield held
        finally:
            self.release()


__all__ = ["GuardHolder", "SectionBusyError", "SectionCommandGuard"]
