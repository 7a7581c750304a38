"""
REST API routes.

Organized into logical groups:
- Notes: CRUD, trash, archive, restore, purge and sharing
- Search & tags
- Backup: export/import
- Storage: status, database connect/disconnect/test
- Settings: admin password

Every handler borrows the active storage adapter from the services container;
none of them construct adapters or read configuration sources directly.
"""

import hmac
import json
import logging
import math
import secrets
from uuid import uuid4

from flask import Blueprint, Response, jsonify, request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .database import Database
from .exceptions import ConfigurationReadOnly, ConnectivityFailure, NoteNotFound
from .services.config_service import ADMIN_PASSWORD_KEY
from .services.container import get_services
from .services.models import (
    DEFAULT_TITLE,
    DatabaseConnectRequest,
    Note,
    NoteInput,
    PasswordChange,
    now_ms,
)
from .services.note_stats import calculate_note_stats
from .services.selector import StorageKind

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

DAY_MS = 24 * 60 * 60 * 1000


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


@bp.errorhandler(ValidationError)
def _handle_validation_error(exc: ValidationError):
    messages = ", ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _json_error(f"Validation error: {messages}")


def _validated(model):
    payload = request.get_json(silent=True)
    return model.model_validate(payload if payload is not None else {})


def _with_stats(note: Note) -> Note:
    stats = calculate_note_stats(note.title, note.content)
    return note.model_copy(update=stats.model_dump())


def _require_note(note_id: str) -> Note:
    note = get_services().storage.get(note_id)
    if note is None:
        raise NoteNotFound()
    return note


# ============================================================================
# NOTE ENDPOINTS
# ============================================================================


@bp.get("/notes")
def list_notes():
    """
    List active notes (pinned first, most recently updated next).

    Returns:
        JSON: [NoteMeta, ...]
    """
    notes = get_services().storage.list()
    return jsonify([note.to_api() for note in notes])


@bp.post("/notes")
def create_note():
    """
    Create a note.

    Body: {"title"?: str, "content"?: str, "tags"?: [str], "isPinned"?: bool}
    """
    data = _validated(NoteInput)
    now = now_ms()
    note = _with_stats(
        Note(
            id=str(uuid4()),
            title=data.title or DEFAULT_TITLE,
            content=data.content or "",
            tags=data.tags or [],
            is_pinned=bool(data.is_pinned),
            created_at=now,
            updated_at=now,
        )
    )
    get_services().storage.save(note)
    return jsonify(note.to_api()), 201


@bp.get("/notes/trash")
def list_trash():
    """
    List trashed notes, purging the ones older than the retention period.

    Returns:
        JSON: [Note + {"daysUntilPurge": int}, ...]
    """
    storage = get_services().storage
    now = now_ms()
    retention = Config.trash_retention_ms()

    trashed = []
    for note in storage.export_all():
        if note.deleted_at is None:
            continue
        age = now - note.deleted_at
        if age > retention:
            storage.delete(note.id, purge=True)
            continue
        payload = note.to_api()
        payload["daysUntilPurge"] = math.ceil((retention - age) / DAY_MS)
        trashed.append(payload)

    trashed.sort(key=lambda n: n["deletedAt"], reverse=True)
    return jsonify(trashed)


@bp.get("/notes/archive")
def list_archive():
    """
    List archived notes, most recently archived first.

    Returns:
        JSON: [Note, ...]
    """
    archived = [
        note for note in get_services().storage.export_all() if note.archived_at is not None
    ]
    archived.sort(key=lambda n: n.archived_at, reverse=True)
    return jsonify([note.to_api() for note in archived])


@bp.get("/notes/<note_id>")
def get_note(note_id: str):
    """Get a note by ID, trashed notes included."""
    return jsonify(_require_note(note_id).to_api())


@bp.put("/notes/<note_id>")
def update_note(note_id: str):
    """
    Update a note. Only the fields present in the body change; the merged
    note is then saved as a whole.
    """
    data = _validated(NoteInput)
    existing = _require_note(note_id)

    changes = {"updated_at": now_ms()}
    if data.title is not None:
        changes["title"] = data.title or DEFAULT_TITLE
    if data.content is not None:
        changes["content"] = data.content
    if data.tags is not None:
        changes["tags"] = data.tags
    if data.is_pinned is not None:
        changes["is_pinned"] = data.is_pinned

    updated = _with_stats(existing.model_copy(update=changes))
    get_services().storage.save(updated)
    return jsonify(updated.to_api())


@bp.delete("/notes/<note_id>")
def delete_note(note_id: str):
    """Move a note to the trash."""
    _require_note(note_id)
    get_services().storage.delete(note_id)
    return jsonify({"success": True})


@bp.delete("/notes/<note_id>/purge")
def purge_note(note_id: str):
    """Permanently delete a note."""
    _require_note(note_id)
    get_services().storage.delete(note_id, purge=True)
    return jsonify({"success": True})


@bp.post("/notes/<note_id>/restore")
def restore_note(note_id: str):
    """Bring a trashed or archived note back to the main list."""
    existing = _require_note(note_id)
    restored = existing.model_copy(
        update={"deleted_at": None, "archived_at": None, "updated_at": now_ms()}
    )
    get_services().storage.save(restored)
    return jsonify(restored.to_api())


@bp.post("/notes/<note_id>/archive")
def archive_note(note_id: str):
    """Archive a note. Unknown and already archived notes answer 404."""
    storage = get_services().storage
    note = storage.get(note_id)
    if note is None or note.archived_at is not None:
        return _json_error("Note not found or already archived", 404)

    now = now_ms()
    storage.save(note.model_copy(update={"archived_at": now, "updated_at": now}))
    return jsonify({"success": True, "archivedAt": now})


@bp.post("/notes/<note_id>/share")
def share_note(note_id: str):
    """Enable public sharing; an existing token is reused."""
    note = _require_note(note_id)
    share_token = note.share_token or secrets.token_urlsafe(12)
    if share_token != note.share_token:
        get_services().storage.save(
            note.model_copy(update={"share_token": share_token, "updated_at": now_ms()})
        )
    return jsonify({"shareToken": share_token, "url": f"/share/{share_token}"})


@bp.delete("/notes/<note_id>/share")
def unshare_note(note_id: str):
    """Disable public sharing."""
    note = _require_note(note_id)
    get_services().storage.save(
        note.model_copy(update={"share_token": None, "updated_at": now_ms()})
    )
    return jsonify({"success": True})


@bp.get("/share/<token>")
def get_shared_note(token: str):
    """Public read of a shared note; trashed notes are never served."""
    for note in get_services().storage.export_all():
        if note.share_token == token and note.deleted_at is None:
            return jsonify(
                {
                    "id": note.id,
                    "title": note.title,
                    "content": note.content,
                    "updatedAt": note.updated_at,
                    "tags": note.tags,
                }
            )
    return _json_error("Note not found or sharing disabled", 404)


# ============================================================================
# SEARCH & TAG ENDPOINTS
# ============================================================================


@bp.get("/search")
def search_notes():
    """
    Substring search over titles and content.

    Query params:
        - q: Search text (required)
    """
    query = request.args.get("q", "")
    if not query.strip():
        return _json_error("Query parameter 'q' is required")
    results = get_services().storage.search(query)
    return jsonify({"query": query, "results": [note.to_api() for note in results]})


@bp.get("/tags")
def get_tags():
    """
    Tags across active notes with usage counts.

    Returns:
        JSON: [{"name": str, "count": int}, ...] most used first
    """
    counts: dict[str, int] = {}
    for note in get_services().storage.list():
        for tag in note.tags:
            counts[tag] = counts.get(tag, 0) + 1

    tags = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return jsonify([{"name": name, "count": count} for name, count in tags])


# ============================================================================
# BACKUP ENDPOINTS
# ============================================================================


@bp.get("/export")
def export_notes():
    """Download every note, trashed ones included, as a JSON attachment."""
    notes = [note.to_api() for note in get_services().storage.export_all()]
    return Response(
        json.dumps(notes, indent=2, ensure_ascii=False),
        mimetype="application/json",
        headers={"Content-Disposition": 'attachment; filename="easy-notes-backup.json"'},
    )


@bp.post("/import")
def import_notes():
    """
    Import a backup produced by /export.

    Body: [Note, ...]. Entries without id or title are skipped.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, list):
        return _json_error("Invalid format. Expected an array of notes.")

    storage = get_services().storage
    success = 0
    failed = 0
    for item in payload:
        if not isinstance(item, dict) or not item.get("id") or not item.get("title"):
            continue
        try:
            storage.save(Note.model_validate(item))
            success += 1
        except ValidationError as e:
            logger.warning("Failed to import note %s: %s", item.get("id"), e)
            failed += 1

    return jsonify(
        {
            "success": True,
            "message": f"Import completed: {success} notes imported, {failed} failed.",
            "stats": {"success": success, "failed": failed},
        }
    )


# ============================================================================
# STORAGE ENDPOINTS
# ============================================================================


@bp.get("/status")
def storage_status():
    """Check storage connectivity and report capacity."""
    storage = get_services().storage
    storage.list()
    usage = storage.get_usage()
    return jsonify({"status": "connected", "storageType": storage.kind, "usage": usage.model_dump()})


@bp.get("/database/status")
def database_status():
    """
    Report the active storage kind and database connection (credentials masked).
    """
    svc = get_services()
    storage_type = svc.storage_manager.get_storage_type()
    db_config = svc.config.get_database_config()

    return jsonify(
        {
            "storageType": storage_type.value,
            "provider": db_config.provider.value if db_config else None,
            "url": db_config.masked_url() if db_config else None,
            "isConfigured": svc.storage_manager.is_storage_configured(),
            "isDemoMode": storage_type == StorageKind.MEMORY,
            "deploymentType": svc.environment.deployment_type,
            "canModifyConfig": svc.environment.can_modify_config(),
            "supportsHotReload": svc.environment.supports_hot_reload(),
        }
    )


def _parse_database_request():
    data = _validated(DatabaseConnectRequest)
    return data.to_database_config()


@bp.post("/database/test")
def test_database():
    """Try a throwaway connection to user-provided database settings."""
    try:
        db_config = _parse_database_request()
    except ValidationError:
        raise
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400

    try:
        database = Database(db_config)
        try:
            database.test_connection()
        finally:
            database.dispose()
    except (ConnectivityFailure, SQLAlchemyError, ImportError) as e:
        return jsonify({"success": False, "message": str(e)})

    return jsonify({"success": True, "message": "Connection successful"})


@bp.post("/database/connect")
def connect_database():
    """
    Persist new database settings and hot-reload storage.

    Refused on the ephemeral platform, where configuration lives in the
    platform's environment variables.
    """
    svc = get_services()
    if not svc.environment.can_modify_config():
        raise ConfigurationReadOnly()

    try:
        db_config = _parse_database_request()
    except ValidationError:
        raise
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400

    database = Database(db_config)
    try:
        database.test_connection()
    finally:
        database.dispose()

    svc.config.set_database_config(db_config)
    svc.storage_manager.reload_storage()
    storage_type = svc.storage_manager.get_storage_type()

    return jsonify(
        {
            "success": True,
            "message": "Database connected",
            "storageType": storage_type.value,
            "provider": db_config.provider.value,
        }
    )


@bp.post("/database/disconnect")
def disconnect_database():
    """Forget the file-configured database and reload storage."""
    body = request.get_json(silent=True) or {}
    if body.get("confirm") is not True:
        return jsonify(
            {
                "success": False,
                "message": "Please confirm disconnect by sending { confirm: true }",
                "warning": "Disconnecting reverts to the next available storage backend.",
            }
        ), 400

    svc = get_services()
    svc.config.clear_database_config()
    svc.storage_manager.reload_storage()
    storage_type = svc.storage_manager.get_storage_type()

    return jsonify(
        {
            "success": True,
            "message": "Disconnected from database.",
            "storageType": storage_type.value,
            "isDemoMode": storage_type == StorageKind.MEMORY,
        }
    )


# ============================================================================
# SETTINGS ENDPOINTS
# ============================================================================


@bp.post("/settings/password")
def change_password():
    """
    Rotate the admin password. The new value is stored in the settings table
    and takes priority over the ADMIN_PASSWORD environment variable.
    """
    data = _validated(PasswordChange)
    svc = get_services()

    current = svc.config.get(ADMIN_PASSWORD_KEY) or Config.DEFAULT_ADMIN_PASSWORD
    if not hmac.compare_digest(data.current_password.encode(), current.encode()):
        return _json_error("Current password is incorrect", 401)

    if len(data.new_password) < Config.MIN_PASSWORD_LENGTH:
        return _json_error(
            f"New password must be at least {Config.MIN_PASSWORD_LENGTH} characters"
        )

    svc.config.set(ADMIN_PASSWORD_KEY, data.new_password)
    return jsonify({"success": True})


# ============================================================================
# UTILITY ENDPOINTS
# ============================================================================


@bp.get("/health")
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})
