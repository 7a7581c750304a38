"""
In-memory storage used for demo mode.

Everything is lost on process restart, which is why the selector refuses this
adapter in production.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .adapter import WELCOME_NOTE_ID, StorageAdapter, list_active, search_active, welcome_note
from .models import Note, NoteMeta, StorageUsage, now_ms

DEMO_CAPACITY_BYTES = 250 * 1024 * 1024


class MemoryStorage(StorageAdapter):
    kind = "memory"

    def __init__(self):
        self._notes: Dict[str, Note] = {}

    def list(self) -> List[NoteMeta]:
        return list_active(list(self._notes.values()))

    def get(self, note_id: str) -> Optional[Note]:
        note = self._notes.get(note_id)
        if note is None:
            return welcome_note() if note_id == WELCOME_NOTE_ID else None
        return note.model_copy(deep=True)

    def save(self, note: Note) -> None:
        self._notes[note.id] = note.model_copy(deep=True)

    def delete(self, note_id: str, purge: bool = False) -> None:
        if purge:
            self._notes.pop(note_id, None)
            return
        note = self._notes.get(note_id)
        if note is not None:
            note.deleted_at = now_ms()

    def search(self, query: str) -> List[NoteMeta]:
        return search_active(self._notes.values(), query)

    def export_all(self) -> List[Note]:
        return [note.model_copy(deep=True) for note in self._notes.values()]

    def get_usage(self) -> StorageUsage:
        used = sum(len(note.model_dump_json(by_alias=True)) for note in self._notes.values())
        return StorageUsage(used=used, total=DEMO_CAPACITY_BYTES)
