"""
Layered configuration resolver.

Sources, in the order they are consulted by get():

- ephemeral platform: environment variables only
- mutable platform: local override file -> environment -> settings table
- ADMIN_PASSWORD: settings table first, so a rotated password wins over the
  deployment's environment variable

Database connection keys are never read from the settings table because the
database has to be known before any connection exists.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Config
from ..database import Database
from ..environment import DeploymentEnvironment
from ..exceptions import (
    ConfigurationReadOnly,
    ConnectivityFailure,
    InvalidDatabaseUrl,
    NoDatabaseConfigured,
)
from .encryption import ConfigEncryption, is_sensitive
from .models import DatabaseConfig

logger = logging.getLogger(__name__)

DATABASE_PROVIDER_KEY = "DATABASE_PROVIDER"
DATABASE_URL_KEY = "DATABASE_URL"
DATABASE_TOKEN_KEY = "DATABASE_AUTH_TOKEN"
DATABASE_KEYS = frozenset({DATABASE_PROVIDER_KEY, DATABASE_URL_KEY, DATABASE_TOKEN_KEY})

# Older deployments configured the embedded engine through these names
LEGACY_URL_KEY = "TURSO_DATABASE_URL"
LEGACY_TOKEN_KEY = "TURSO_AUTH_TOKEN"

ADMIN_PASSWORD_KEY = "ADMIN_PASSWORD"


class ConfigService:
    """
    Get/set named configuration values.

    Found values are memoized until clear_cache(); a missing value is looked up
    again on every call so a settings table provisioned later is picked up.
    """

    def __init__(
        self,
        environment: DeploymentEnvironment,
        environ: Optional[Mapping[str, str]] = None,
        *,
        override_path: Optional[Path] = None,
        encryption: Optional[ConfigEncryption] = None,
        database_factory: Callable[[DatabaseConfig], Database] = Database,
    ):
        self.environment = environment
        self.environ = os.environ if environ is None else environ
        self.override_path = Path(override_path or Config.LOCAL_CONFIG_PATH)
        self.encryption = encryption or ConfigEncryption(self.environ.get("CONFIG_ENCRYPTION_KEY"))
        self._database_factory = database_factory
        self._cache: Dict[str, str] = {}
        self._overrides: Optional[Dict[str, str]] = None
        self._database: Optional[Database] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        if key in self._cache:
            return self._cache[key]

        value = self._resolve(key)
        if value is not None:
            self._cache[key] = value
        return value

    def set(self, key: str, value: str) -> None:
        if not self.environment.can_modify_config():
            raise ConfigurationReadOnly()

        if key in DATABASE_KEYS:
            self._write_overrides({key: value})
        else:
            stored = self.encryption.encrypt(value) if is_sensitive(key) else value
            self.database().set_setting(key, stored)

        self._cache[key] = value

    def get_database_config(self) -> Optional[DatabaseConfig]:
        """Resolve connection parameters from the override file, then the environment."""
        if not self.environment.is_ephemeral_platform:
            overrides = self._read_overrides()
            url = overrides.get(DATABASE_URL_KEY)
            if url:
                return DatabaseConfig.from_url(url, overrides.get(DATABASE_TOKEN_KEY))

        url = self.environ.get(DATABASE_URL_KEY) or self.environ.get(LEGACY_URL_KEY)
        if url:
            token = self.environ.get(DATABASE_TOKEN_KEY) or self.environ.get(LEGACY_TOKEN_KEY)
            return DatabaseConfig.from_url(url, token)
        return None

    def set_database_config(self, db_config: DatabaseConfig) -> None:
        """Persist connection parameters to the local override file."""
        if not self.environment.can_modify_config():
            raise ConfigurationReadOnly()
        self._write_overrides(
            {
                DATABASE_PROVIDER_KEY: db_config.provider.value,
                DATABASE_URL_KEY: db_config.url,
                DATABASE_TOKEN_KEY: db_config.token,
            }
        )
        self.clear_cache()

    def clear_database_config(self) -> None:
        """Drop connection parameters from the override file."""
        if not self.environment.can_modify_config():
            raise ConfigurationReadOnly()
        self._write_overrides({key: None for key in DATABASE_KEYS})
        self.clear_cache()

    def database(self) -> Database:
        """Connection to the configured relational medium, created on first use."""
        db_config = self.get_database_config()
        if db_config is None:
            raise NoDatabaseConfigured()
        if self._database is None or self._database.config != db_config:
            self._database = self._database_factory(db_config)
        return self._database

    def clear_cache(self) -> None:
        self._cache.clear()
        self._overrides = None
        self._database = None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(self, key: str) -> Optional[str]:
        if key == ADMIN_PASSWORD_KEY:
            value = self._get_from_db(key)
            if value is not None:
                return value

        if self.environment.is_ephemeral_platform:
            return self.environ.get(key) or None

        value = self._read_overrides().get(key)
        if value:
            return value

        value = self.environ.get(key)
        if value:
            return value

        if key in DATABASE_KEYS or key == ADMIN_PASSWORD_KEY:
            return None
        return self._get_from_db(key)

    def _get_from_db(self, key: str) -> Optional[str]:
        """
        Settings table lookup used while bootstrapping.

        The database may not be configured or provisioned yet, so every failure
        here means "absent".
        """
        try:
            value = self.database().get_setting(key)
        except (
            NoDatabaseConfigured,
            InvalidDatabaseUrl,
            ConnectivityFailure,
            SQLAlchemyError,
            ImportError,
        ) as e:
            logger.debug("Settings lookup for %s skipped: %s", key, e)
            return None

        if value is None or not is_sensitive(key):
            return value
        try:
            return self.encryption.decrypt(value)
        except ValueError:
            logger.warning("Stored value for %s could not be decrypted; ignoring it", key)
            return None

    # ------------------------------------------------------------------
    # Local override file
    # ------------------------------------------------------------------

    def _read_overrides(self) -> Dict[str, str]:
        if self._overrides is None:
            self._overrides = self._load_override_file()
        return self._overrides

    def _load_override_file(self) -> Dict[str, str]:
        if not self.override_path.exists():
            return {}
        try:
            data = json.loads(self.override_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable config override %s: %s", self.override_path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _write_overrides(self, updates: Mapping[str, Optional[str]]) -> None:
        data = dict(self._load_override_file())
        for key, value in updates.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value

        self.override_path.parent.mkdir(parents=True, exist_ok=True)
        self.override_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        self._overrides = data
