"""
SQLAlchemy-backed storage adapter for notes.

Works against SQLite / libsql and PostgreSQL through the same ORM models.
Soft-deleted rows stay in the table until purged.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

from sqlalchemy import delete, desc, func, or_, select, update
from sqlalchemy.orm import defer

from ..database import Database, NoteRecord
from .adapter import WELCOME_NOTE_ID, StorageAdapter, welcome_note
from .models import Note, NoteMeta, StorageUsage, now_ms

_STAT_FIELDS = (
    "word_count",
    "char_count",
    "read_time_minutes",
    "code_blocks",
    "image_count",
    "link_count",
    "content_hash",
    "cover_image",
    "first_paragraph",
    "preview",
    "language",
)


def _serialize_tags(tags: List[str]) -> str:
    return json.dumps(tags or [])


def _deserialize_tags(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return []


def _record_fields(record: NoteRecord) -> dict:
    fields = {
        "id": record.id,
        "title": record.title,
        "tags": _deserialize_tags(record.tags),
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "is_pinned": bool(record.is_pinned),
        "deleted_at": record.deleted_at,
        "share_token": record.share_token,
        "archived_at": record.archived_at,
    }
    for name in _STAT_FIELDS:
        value = getattr(record, name)
        if value is not None:
            fields[name] = value
    return fields


def _record_to_note(record: NoteRecord) -> Note:
    return Note(content=record.content, **_record_fields(record))


def _record_to_meta(record: NoteRecord) -> NoteMeta:
    return NoteMeta(**_record_fields(record))


def _apply_note(record: NoteRecord, note: Note) -> None:
    record.title = note.title
    record.content = note.content
    record.tags = _serialize_tags(note.tags)
    record.created_at = note.created_at
    record.updated_at = note.updated_at
    record.is_pinned = note.is_pinned
    record.deleted_at = note.deleted_at
    record.share_token = note.share_token
    record.archived_at = note.archived_at
    for name in _STAT_FIELDS:
        setattr(record, name, getattr(note, name))


class NoteStorage(StorageAdapter):
    """Relational adapter; one row per note in the notes table."""

    kind = "database"

    def __init__(self, database: Database):
        self.database = database

    def list(self) -> List[NoteMeta]:
        with self.database.session() as session:
            records = (
                session.query(NoteRecord)
                .options(defer(NoteRecord.content))
                .filter(NoteRecord.deleted_at.is_(None))
                .order_by(desc(NoteRecord.is_pinned), desc(NoteRecord.updated_at))
                .all()
            )
            notes = [_record_to_meta(record) for record in records]

            if not notes:
                total = session.query(func.count(NoteRecord.id)).scalar() or 0
                if total == 0:
                    return [welcome_note().to_meta()]
        return notes

    def get(self, note_id: str) -> Optional[Note]:
        with self.database.session() as session:
            record = session.get(NoteRecord, note_id)
            if record is None:
                return welcome_note() if note_id == WELCOME_NOTE_ID else None
            return _record_to_note(record)

    def save(self, note: Note) -> None:
        with self.database.session() as session:
            record = session.get(NoteRecord, note.id)
            if record is None:
                record = NoteRecord(id=note.id)
            _apply_note(record, note)
            session.add(record)

    def delete(self, note_id: str, purge: bool = False) -> None:
        with self.database.session() as session:
            if purge:
                session.execute(delete(NoteRecord).where(NoteRecord.id == note_id))
            else:
                session.execute(
                    update(NoteRecord)
                    .where(NoteRecord.id == note_id)
                    .values(deleted_at=now_ms())
                )

    def search(self, query: str) -> List[NoteMeta]:
        if not query or not query.strip():
            return []

        pattern = query.strip().lower()
        with self.database.session() as session:
            records = (
                session.query(NoteRecord)
                .options(defer(NoteRecord.content))
                .filter(NoteRecord.deleted_at.is_(None))
                .filter(
                    or_(
                        func.lower(NoteRecord.title).contains(pattern, autoescape=True),
                        func.lower(NoteRecord.content).contains(pattern, autoescape=True),
                    )
                )
                .order_by(desc(NoteRecord.is_pinned), desc(NoteRecord.updated_at))
                .all()
            )
            return [_record_to_meta(record) for record in records]

    def export_all(self) -> List[Note]:
        with self.database.session() as session:
            records = session.execute(
                select(NoteRecord).order_by(desc(NoteRecord.updated_at))
            ).scalars().all()
            return [_record_to_note(record) for record in records]

    def get_usage(self) -> StorageUsage:
        with self.database.session() as session:
            used = session.query(
                func.coalesce(func.sum(func.length(NoteRecord.content)), 0)
            ).scalar()
        return StorageUsage(used=int(used or 0), total=None)
