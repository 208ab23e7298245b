"""Undo snapshots of section paragraphs taken before every mutation."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Iterator

from ...editor.document_model import DocumentEngine, Paragraph, now_ms

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class EditSnapshot:
    """Paragraphs of one section captured before it was edited.

    Attributes:
        id: Opaque identifier, always prefixed with ``snap_``.
        document_id: Document the section belongs to.
        section_id: Section whose subtree was captured.
        created_at_ms: Capture time.
        captured_paragraphs: The section's subtree paragraphs at capture time.
    """

    id: str
    document_id: str
    section_id: str
    created_at_ms: int = field(default_factory=now_ms)
    captured_paragraphs: tuple[Paragraph, ...] = ()

    @property
    def paragraph_count(self) -> int:
        return len(self.captured_paragraphs)


def new_snapshot_id() -> str:
    return f"snap_{uuid.uuid4().hex[:12]}"


class SnapshotStore:
    """In-memory snapshots keyed by id until explicitly discarded."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._snapshots: dict[str, EditSnapshot] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def __contains__(self, snapshot_id: object) -> bool:
        with self._lock:
            return snapshot_id in self._snapshots

    def __iter__(self) -> Iterator[EditSnapshot]:
        with self._lock:
            return iter(list(self._snapshots.values()))

    def capture(self, engine: DocumentEngine, section_id: str) -> EditSnapshot:
        """Capture ``section_id``'s subtree paragraphs.

        Raises whatever the engine raises; callers treat a failed capture as
        "not undoable" rather than as a failed edit.
        """

        context = engine.extract_section_context(section_id)
        snapshot = EditSnapshot(
            id=new_snapshot_id(),
            document_id=engine.document_id,
            section_id=section_id,
            captured_paragraphs=tuple(context.subtree_paragraphs),
        )
        with self._lock:
            self._snapshots[snapshot.id] = snapshot
        LOGGER.debug(
            "Captured snapshot %s for section %s (%d paragraphs)",
            snapshot.id,
            section_id,
            snapshot.paragraph_count,
        )
        return snapshot

    def get(self, snapshot_id: str | None) -> EditSnapshot | None:
        if not snapshot_id:
            return None
        with self._lock:
            return self._snapshots.get(snapshot_id)

    def discard(self, snapshot_id: str | None) -> EditSnapshot | None:
        if not snapshot_id:
            return None
        with self._lock:
            return self._snapshots.pop(snapshot_id, None)

    def discard_document(self, document_id: str) -> int:
        with self._lock:
            doomed = [key for key, snap in self._snapshots.items() if snap.document_id == document_id]
            for key in doomed:
                self._snapshots.pop(key, None)
        return len(doomed)

    def restore(self, engine: DocumentEngine, snapshot_id: str) -> bool:
        """Write a snapshot back into ``engine`` and discard it on success."""

        snapshot = self.get(snapshot_id)
        if snapshot is None:
            LOGGER.debug("Snapshot %s not found", snapshot_id)
            return False
        if snapshot.document_id != engine.document_id:
            LOGGER.warning(
                "Snapshot %s belongs to document %s, not %s",
                snapshot_id,
                snapshot.document_id,
                engine.document_id,
            )
            return False
        if not engine.restore_paragraphs(snapshot.section_id, snapshot.captured_paragraphs):
            return False
        self.discard(snapshot_id)
        return True


__all__ = ["EditSnapshot", "SnapshotStore", "new_snapshot_id"]
