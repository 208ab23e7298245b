"""Registry of edit results waiting for a human decision."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping

from ...editor.document_model import now_ms

LOGGER = logging.getLogger(__name__)


class PendingMode(str, Enum):
    PREVIEW = "preview"
    CLARIFY = "clarify"


@dataclass(slots=True, frozen=True)
class PendingResult:
    """A preview or clarification awaiting apply/cancel/resolve.

    ``serialized_result`` is a JSON document holding the primitive's result
    plus a ``_meta`` object (``command``, ``section_action``,
    ``document_id``, ``options``) so the bridge can finish the action later.
    """

    id: str
    section_id: str
    response_mode: PendingMode
    serialized_result: str
    document_id: str
    related_message_id: str | None = None
    created_at_ms: int = field(default_factory=now_ms)
    clarify_depth: int = 0

    def decode(self) -> dict[str, Any]:
        payload = json.loads(self.serialized_result)
        if not isinstance(payload, dict):
            raise ValueError(f"Pending result {self.id} is not a JSON object")
        return payload

    @property
    def meta(self) -> Mapping[str, Any]:
        return self.decode().get("_meta") or {}


def new_pending_id(mode: PendingMode) -> str:
    return f"{mode.value}_{uuid.uuid4().hex[:12]}"


class PendingResultRegistry:
    """Holds exactly the in-flight confirmations.

    An id maps to a single entry, so it can never be both a preview and a
    clarification. Entries are removed by the bridge when they are applied,
    cancelled or resolved.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, PendingResult] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, pending_id: object) -> bool:
        with self._lock:
            return pending_id in self._entries

    def __iter__(self) -> Iterator[PendingResult]:
        with self._lock:
            return iter(list(self._entries.values()))

    def add(self, pending: PendingResult) -> PendingResult:
        with self._lock:
            existing = self._entries.get(pending.id)
            if existing is not None and existing.response_mode is not pending.response_mode:
                raise ValueError(
                    f"Pending result {pending.id} is already registered as {existing.response_mode.value}"
                )
            self._entries[pending.id] = pending
        LOGGER.debug("Registered %s result %s for section %s", pending.response_mode.value, pending.id, pending.section_id)
        return pending

    def get(self, pending_id: str | None) -> PendingResult | None:
        if not pending_id:
            return None
        with self._lock:
            return self._entries.get(pending_id)

    def remove(self, pending_id: str | None) -> PendingResult | None:
        if not pending_id:
            return None
        with self._lock:
            return self._entries.pop(pending_id, None)

    def clear_section(self, section_id: str) -> int:
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.section_id == section_id]
            for key in doomed:
                self._entries.pop(key, None)
        return len(doomed)

    def clear_document(self, document_id: str) -> int:
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.document_id == document_id]
            for key in doomed:
                self._entries.pop(key, None)
        return len(doomed)

    def for_document(self, document_id: str) -> list[PendingResult]:
        with self._lock:
            return [entry for entry in self._entries.values() if entry.document_id == document_id]


__all__ = ["PendingMode", "PendingResult", "PendingResultRegistry", "new_pending_id"]
