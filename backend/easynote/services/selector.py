"""
Storage backend selection and lifecycle.

resolve_storage() decides which medium is active; StorageManager caches the
adapter built for it and rebuilds it on hot reload.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from ..environment import DeploymentEnvironment
from ..exceptions import HotReloadUnsupported, MemoryStorageForbiddenInProduction, NoDatabaseConfigured
from .adapter import StorageAdapter
from .blob_storage import BlobClient, BlobStorage
from .config_service import ConfigService
from .memory_storage import MemoryStorage
from .models import DatabaseConfig
from .storage import NoteStorage

logger = logging.getLogger(__name__)

BLOB_TOKEN_KEY = "BLOB_READ_WRITE_TOKEN"


class StorageKind(str, Enum):
    DATABASE = "database"
    BLOB = "blob"
    MEMORY = "memory"


@dataclass(frozen=True)
class StorageSelection:
    kind: StorageKind
    database: Optional[DatabaseConfig] = None
    blob_token: Optional[str] = None


def resolve_storage(
    config: ConfigService,
    environment: DeploymentEnvironment,
    environ: Mapping[str, str],
) -> StorageSelection:
    """
    Database if a connection string resolves, else blob if a write token is
    set, else memory. Memory is refused in production.
    """
    db_config = config.get_database_config()
    if db_config is not None:
        return StorageSelection(kind=StorageKind.DATABASE, database=db_config)

    blob_token = environ.get(BLOB_TOKEN_KEY)
    if blob_token:
        return StorageSelection(kind=StorageKind.BLOB, blob_token=blob_token)

    if environment.is_production:
        raise MemoryStorageForbiddenInProduction()
    return StorageSelection(kind=StorageKind.MEMORY)


class StorageManager:
    """
    Owns the active storage adapter.

    The adapter and the storage kind are cached independently so status
    reporting never forces an adapter to be built. Concurrent first calls may
    both build an adapter; the last assignment wins.
    """

    def __init__(
        self,
        config: ConfigService,
        environment: DeploymentEnvironment,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.environment = environment
        self.environ = os.environ if environ is None else environ
        self._adapter: Optional[StorageAdapter] = None
        self._kind: Optional[StorageKind] = None

    def get_storage(self) -> StorageAdapter:
        if self._adapter is None:
            selection = resolve_storage(self.config, self.environment, self.environ)
            self._adapter = self._build(selection)
            logger.info("Storage backend initialized: %s", selection.kind.value)
        return self._adapter

    def get_storage_type(self) -> StorageKind:
        if self._kind is None:
            self._kind = resolve_storage(self.config, self.environment, self.environ).kind
        return self._kind

    def reload_storage(self) -> StorageAdapter:
        """Drop every cache and rebuild the adapter from current configuration."""
        if not self.environment.supports_hot_reload():
            raise HotReloadUnsupported()

        self._adapter = None
        self._kind = None
        self.config.clear_cache()
        logger.info("Storage configuration reloaded")
        return self.get_storage()

    def is_storage_configured(self) -> bool:
        return self.get_storage_type() in (StorageKind.DATABASE, StorageKind.BLOB)

    def _build(self, selection: StorageSelection) -> StorageAdapter:
        if selection.kind == StorageKind.DATABASE:
            if selection.database is None:
                raise NoDatabaseConfigured()
            return NoteStorage(self.config.database())
        if selection.kind == StorageKind.BLOB:
            return BlobStorage(BlobClient(selection.blob_token or ""))
        return MemoryStorage()
