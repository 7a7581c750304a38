"""
Dependency injection container for backend services.

We store a single Services instance on the Flask app (app.extensions["services"]).
It holds the process-wide caches (resolved configuration, active storage
adapter) so tests can build a fresh container instead of restarting the process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from flask import current_app

from ..environment import DeploymentEnvironment
from .adapter import StorageAdapter
from .config_service import ConfigService
from .selector import StorageManager


@dataclass(frozen=True)
class Services:
    environment: DeploymentEnvironment
    config: ConfigService
    storage_manager: StorageManager

    @property
    def storage(self) -> StorageAdapter:
        """The active adapter, borrowed for the duration of one request."""
        return self.storage_manager.get_storage()


def create_services(
    *,
    environ: Optional[Mapping[str, str]] = None,
    override_path: Optional[Path] = None,
) -> Services:
    """
    Build the production Services container.

    Args:
        environ: Optional environment mapping (defaults to os.environ; useful for tests).
        override_path: Optional location of the local config override file.
    """
    env = os.environ if environ is None else environ
    environment = DeploymentEnvironment.from_environ(env)
    config = ConfigService(environment, env, override_path=override_path)
    return Services(
        environment=environment,
        config=config,
        storage_manager=StorageManager(config, environment, env),
    )


def get_services() -> Services:
    """
    Fetch the Services container from the current Flask app.

    Raises:
        RuntimeError if services have not been attached to the app.
    """
    services = current_app.extensions.get("services")
    if services is None:
        raise RuntimeError('Services not configured. Expected app.extensions["services"].')
    return services
