"""
Central SQLAlchemy models and session utilities.

The same schema serves the embedded engine (SQLite / libsql) and PostgreSQL.
Tables are created on first connection; there is no separate migration step.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import ConnectivityFailure
from .services.models import DatabaseConfig, DatabaseProvider

logger = logging.getLogger(__name__)

Base = declarative_base()


class NoteRecord(Base):
    """
    Notes table.

    Timestamps are epoch milliseconds; tags are a JSON array stored as text.
    """
    __tablename__ = "notes"

    # Core fields
    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False, default="Untitled Note")
    content = Column(Text, nullable=False, default="")
    tags = Column(Text, nullable=False, default="[]")

    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
    is_pinned = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(BigInteger, nullable=True)
    share_token = Column(String(64), nullable=True, unique=True)
    archived_at = Column(BigInteger, nullable=True)

    # Derived statistics, written verbatim by the caller
    word_count = Column(Integer, nullable=False, default=0)
    char_count = Column(Integer, nullable=False, default=0)
    read_time_minutes = Column(Integer, nullable=False, default=0)
    code_blocks = Column(Integer, nullable=False, default=0)
    image_count = Column(Integer, nullable=False, default=0)
    link_count = Column(Integer, nullable=False, default=0)
    content_hash = Column(String(64), nullable=True)
    cover_image = Column(Text, nullable=True)
    first_paragraph = Column(Text, nullable=True)
    preview = Column(Text, nullable=True)
    language = Column(String(16), nullable=True)

    __table_args__ = (
        Index("idx_notes_deleted_pinned_updated", "deleted_at", "is_pinned", "updated_at"),
    )


class Setting(Base):
    """Durable key/value settings; sensitive values are encrypted."""
    __tablename__ = "settings"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)


def to_sqlalchemy_url(db_config: DatabaseConfig) -> str:
    """
    Translate a user-facing connection string into a SQLAlchemy URL.

    file:./notes.db     -> sqlite:///./notes.db
    libsql://db.turso.io -> sqlite+libsql://db.turso.io?secure=true
    postgres://...       -> postgresql://...
    """
    url = db_config.url
    if db_config.provider == DatabaseProvider.LIBSQL:
        if url.startswith("sqlite"):
            return url
        if url.startswith("file:"):
            path = url[len("file:"):]
            if path.startswith("//"):
                path = path[2:]
            if path in ("", ":memory:"):
                return "sqlite://"
            return f"sqlite:///{path}"
        host = url[len("libsql://"):]
        separator = "&" if "?" in host else "?"
        return f"sqlite+libsql://{host}{separator}secure=true"

    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def create_engine_for_url(database_url: str, auth_token: Optional[str] = None) -> Engine:
    """Build a SQLAlchemy engine for the given SQLAlchemy URL."""
    kwargs = {"future": True, "echo": False, "pool_pre_ping": True}

    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise each session sees an empty database
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    elif database_url.startswith("sqlite+libsql"):
        kwargs["connect_args"] = {"auth_token": auth_token} if auth_token else {}
    elif database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite" and not database_url.startswith("sqlite+libsql"):
        event.listen(engine, "connect", _set_sqlite_pragmas)

    return engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """Apply SQLite pragmas for better consistency (WAL, foreign keys)."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class Database:
    """
    One relational medium: engine, session factory, schema bootstrap and the
    settings table.
    """

    def __init__(self, db_config: DatabaseConfig, engine: Optional[Engine] = None):
        self.config = db_config
        self.engine = engine or create_engine_for_url(to_sqlalchemy_url(db_config), db_config.token)
        self.dialect = self.engine.dialect.name
        self.session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )
        self._schema_ready = False

    def ensure_schema(self) -> None:
        """Create notes + settings tables if they do not exist yet."""
        if self._schema_ready:
            return
        try:
            Base.metadata.create_all(bind=self.engine)
        except DBAPIError as e:
            raise ConnectivityFailure(f"Database unreachable: {e}") from e
        self._schema_ready = True

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Driver-level failures (connection refused, missing or corrupt file,
        auth and permission errors) are re-raised as ConnectivityFailure.
        """
        self.ensure_schema()
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except DBAPIError as e:
            session.rollback()
            raise ConnectivityFailure(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def test_connection(self) -> None:
        with self.session() as session:
            session.execute(select(1))

    # ------------------------------------------------------------------
    # Settings table
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> Optional[str]:
        with self.session() as session:
            row = session.get(Setting, key)
            return row.value if row else None

    def set_setting(self, key: str, value: str) -> None:
        """Upsert by key; delete-then-insert where the dialect has no upsert."""
        try:
            statement = self._upsert_statement(key, value)
        except NotImplementedError:
            statement = None

        if statement is not None:
            try:
                with self.session() as session:
                    session.execute(statement)
                return
            except ConnectivityFailure:
                raise
            except SQLAlchemyError as e:
                logger.debug("Settings upsert failed for %s, falling back: %s", key, e)

        with self.session() as session:
            session.execute(delete(Setting).where(Setting.key == key))
            session.add(Setting(key=key, value=value))

    def _upsert_statement(self, key: str, value: str):
        if self.dialect == "sqlite":
            stmt = sqlite_insert(Setting).values(key=key, value=value)
        elif self.dialect == "postgresql":
            stmt = pg_insert(Setting).values(key=key, value=value)
        else:
            raise NotImplementedError(self.dialect)
        return stmt.on_conflict_do_update(index_elements=[Setting.key], set_={"value": value})

    def dispose(self) -> None:
        self.engine.dispose()
