"""
Storage adapter contract shared by every persistence medium.

Exactly one adapter is active at a time; services.selector.StorageManager owns
it and route handlers borrow it through get_storage().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import Note, NoteMeta, StorageUsage

WELCOME_NOTE_ID = "welcome-note"
WELCOME_NOTE_TITLE = "👋 Welcome to Easy Note!"
# list() and get() return the same welcome note
WELCOME_NOTE_TIMESTAMP = 0

WELCOME_NOTE_CONTENT = """
# Getting Started with Easy Note

Welcome to your new Markdown note-taking experience!

## 🚀 Storage Modes

If you see a **DEMO MODE** banner, your notes live in server memory and are
lost when the server restarts. Connect a database from the settings page, or
set `DATABASE_URL` / `BLOB_READ_WRITE_TOKEN`, to keep them.

1.  **Demo Mode (Memory)**: perfect for trying out the editor.
2.  **Blob Storage**: every note is a JSON document in your blob store.
3.  **Database**: SQLite / libsql (`file:` or `libsql://`) or PostgreSQL.

## ✍️ The Editor

- Type standard Markdown (e.g., `#` for headers, `**` for bold).
- Pin important notes so they stay at the top of the list.
- Deleted notes go to the trash and can be restored for 30 days.

Enjoy writing!
"""


def welcome_note() -> Note:
    """Synthetic note shown while the medium holds no notes at all."""
    return Note(
        id=WELCOME_NOTE_ID,
        title=WELCOME_NOTE_TITLE,
        content=WELCOME_NOTE_CONTENT,
        created_at=WELCOME_NOTE_TIMESTAMP,
        updated_at=WELCOME_NOTE_TIMESTAMP,
        is_pinned=False,
        deleted_at=None,
    )


def sort_notes(notes: Iterable[NoteMeta]) -> List[NoteMeta]:
    """Pinned notes first, then most recently updated."""
    return sorted(notes, key=lambda n: (not n.is_pinned, -n.updated_at))


def matches_query(note: Note, query: str) -> bool:
    needle = query.lower()
    return needle in (note.title or "").lower() or needle in (note.content or "").lower()


def list_active(notes: List[Note]) -> List[NoteMeta]:
    """Listing semantics for adapters that hold every note in hand."""
    if not notes:
        return [welcome_note().to_meta()]
    return sort_notes(n.to_meta() for n in notes if not n.is_deleted)


def search_active(notes: Iterable[Note], query: str) -> List[NoteMeta]:
    if not query or not query.strip():
        return []
    return sort_notes(
        n.to_meta() for n in notes if not n.is_deleted and matches_query(n, query.strip())
    )


class StorageAdapter(ABC):
    """
    Note persistence contract.

    Adapters never filter get() by deleted/pinned state, never compute note
    statistics, and surface medium failures as ConnectivityFailure.
    """

    kind: str = ""

    @abstractmethod
    def list(self) -> List[NoteMeta]:
        """Active notes ordered pinned-first then by updatedAt descending."""

    @abstractmethod
    def get(self, note_id: str) -> Optional[Note]:
        """Any note by id, trashed included; None when unknown."""

    @abstractmethod
    def save(self, note: Note) -> None:
        """Full upsert: insert, or overwrite every mutable field."""

    @abstractmethod
    def delete(self, note_id: str, purge: bool = False) -> None:
        """Soft delete by default; purge=True removes the note physically."""

    @abstractmethod
    def search(self, query: str) -> List[NoteMeta]:
        """Case-insensitive substring match over title and content."""

    @abstractmethod
    def export_all(self) -> List[Note]:
        """Every note, trashed included, with full content."""

    def get_usage(self) -> StorageUsage:
        return StorageUsage(used=0, total=None)
