"""
Data models for notes storage.

Uses Pydantic for validation and serialization. Core note fields use the
camelCase wire names of the JSON API (createdAt, isPinned, ...) as aliases;
statistics fields keep their snake_case names.
"""

import re
import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import InvalidDatabaseUrl

DEFAULT_TITLE = "Untitled Note"
MAX_TITLE_LENGTH = 200
MAX_CONTENT_LENGTH = 100_000
MAX_TAGS = 50
MAX_TAG_LENGTH = 50

_TAG_PATTERN = re.compile(r"^\w+(?:-\w+)*$")


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class NoteStats(BaseModel):
    """Derived statistics, recomputed by the caller on every content write"""
    word_count: int = Field(default=0, ge=0)
    char_count: int = Field(default=0, ge=0)
    read_time_minutes: int = Field(default=0, ge=0)
    code_blocks: int = Field(default=0, ge=0)
    image_count: int = Field(default=0, ge=0)
    link_count: int = Field(default=0, ge=0)
    content_hash: Optional[str] = None
    cover_image: Optional[str] = None
    first_paragraph: Optional[str] = None
    preview: Optional[str] = None
    language: Optional[str] = None


class NoteMeta(NoteStats):
    """Note without its content, used for list views"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = DEFAULT_TITLE
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")
    is_pinned: bool = Field(default=False, alias="isPinned")
    deleted_at: Optional[int] = Field(default=None, alias="deletedAt")
    share_token: Optional[str] = Field(default=None, alias="shareToken")
    archived_at: Optional[int] = Field(default=None, alias="archivedAt")
    tags: List[str] = Field(default_factory=list)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)


class Note(NoteMeta):
    """Complete note with all fields"""
    content: str = ""

    def to_meta(self) -> NoteMeta:
        return NoteMeta(**self.model_dump(exclude={"content"}))


class StorageUsage(BaseModel):
    """Storage capacity; total=None means the medium is unbounded"""
    used: int = 0
    total: Optional[int] = None


class DatabaseProvider(str, Enum):
    LIBSQL = "libsql"
    POSTGRES = "postgres"


def infer_provider(url: str) -> DatabaseProvider:
    """Pick the relational engine from the connection string prefix."""
    if url.startswith(("libsql://", "file:", "sqlite:")):
        return DatabaseProvider.LIBSQL
    if url.startswith(("postgres://", "postgresql://", "postgresql+")):
        return DatabaseProvider.POSTGRES
    raise InvalidDatabaseUrl(f"Unsupported database URL scheme: {url.split(':', 1)[0]}")


class DatabaseConfig(BaseModel):
    """Resolved database connection parameters"""
    provider: DatabaseProvider
    url: str
    token: Optional[str] = None

    @classmethod
    def from_url(cls, url: str, token: Optional[str] = None) -> "DatabaseConfig":
        return cls(provider=infer_provider(url), url=url, token=token or None)

    def masked_url(self) -> str:
        """Connection string safe for display (credentials hidden)."""
        scheme, sep, rest = self.url.partition("://")
        if not sep:
            return self.url.split(":", 1)[0] + ":***"
        host_and_path = rest.rsplit("@", 1)[-1]
        return f"{scheme}://***@{host_and_path.split('?', 1)[0]}"


# ============================================================================
# Request payloads (validated at the HTTP write boundary)
# ============================================================================


class NoteInput(BaseModel):
    """Fields a client may send when creating or updating a note"""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, max_length=MAX_TITLE_LENGTH)
    content: Optional[str] = Field(default=None, max_length=MAX_CONTENT_LENGTH)
    tags: Optional[List[str]] = Field(default=None, max_length=MAX_TAGS)
    is_pinned: Optional[bool] = Field(default=None, alias="isPinned")

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, tags: Optional[List[str]]) -> Optional[List[str]]:
        if tags is None:
            return None
        normalized: List[str] = []
        for raw in tags:
            tag = raw.strip().lower()
            if not tag or len(tag) > MAX_TAG_LENGTH or not _TAG_PATTERN.match(tag):
                raise ValueError(f"Invalid tag: {raw!r}")
            if tag in normalized:
                raise ValueError(f"Duplicate tag: {tag!r}")
            normalized.append(tag)
        return normalized


class DatabaseConnectRequest(BaseModel):
    """Database settings submitted from the settings page"""
    model_config = ConfigDict(populate_by_name=True)

    provider: str
    url: Optional[str] = None
    token: Optional[str] = None
    connection_string: Optional[str] = Field(default=None, alias="connectionString")
    host: Optional[str] = None
    port: int = 5432
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = True

    def to_database_config(self) -> DatabaseConfig:
        provider = self.provider.lower()
        if provider in ("libsql", "turso"):
            if not self.url:
                raise ValueError("Database URL is required for libsql")
            config = DatabaseConfig.from_url(self.url, self.token)
        elif provider in ("postgres", "supabase"):
            if self.connection_string:
                url = self.connection_string
            elif self.host and self.database and self.username:
                query = "?sslmode=require" if self.ssl else ""
                url = (
                    f"postgresql://{self.username}:{self.password or ''}"
                    f"@{self.host}:{self.port}/{self.database}{query}"
                )
            else:
                raise ValueError("Connection string or host/database/username are required")
            config = DatabaseConfig.from_url(url)
        else:
            raise ValueError(f"Invalid provider: {self.provider}")

        if config.provider.value != ("libsql" if provider in ("libsql", "turso") else "postgres"):
            raise ValueError("Connection string does not match the selected provider")
        return config


class PasswordChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword", max_length=100)
    new_password: str = Field(..., alias="newPassword", max_length=100)
