"""
Error taxonomy for the storage and configuration layers.

Every error carries a stable code and an HTTP status so the Flask layer can
turn it into a JSON response with a single error handler.
"""

from __future__ import annotations


class EasyNoteError(Exception):
    """Base class for all application errors."""

    code = "EASYNOTE_ERROR"
    http_status_code = 500
    default_message = "Unexpected application error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class ConfigurationReadOnly(EasyNoteError):
    code = "CONFIGURATION_READ_ONLY"
    http_status_code = 403
    default_message = (
        "Configuration is read-only on this platform. "
        "Set environment variables in the platform dashboard and redeploy."
    )


class HotReloadUnsupported(EasyNoteError):
    code = "HOT_RELOAD_UNSUPPORTED"
    http_status_code = 409
    default_message = "Hot reload is not supported on this platform. Redeploy to apply changes."


class NoDatabaseConfigured(EasyNoteError):
    code = "NO_DATABASE_CONFIGURED"
    http_status_code = 503
    default_message = "No database connection string is configured"


class MemoryStorageForbiddenInProduction(EasyNoteError):
    code = "MEMORY_STORAGE_FORBIDDEN"
    http_status_code = 503
    default_message = (
        "No persistent storage configured. Set DATABASE_URL or BLOB_READ_WRITE_TOKEN; "
        "in-memory storage is not allowed in production."
    )


class ConnectivityFailure(EasyNoteError):
    """Opaque wrapper around an error raised by the underlying medium."""

    code = "CONNECTIVITY_FAILURE"
    http_status_code = 502
    default_message = "Storage medium is unreachable"


class InvalidDatabaseUrl(EasyNoteError, ValueError):
    code = "INVALID_DATABASE_URL"
    http_status_code = 400
    default_message = "Unsupported database URL scheme"


class NoteNotFound(EasyNoteError):
    code = "NOTE_NOT_FOUND"
    http_status_code = 404
    default_message = "Note not found"
