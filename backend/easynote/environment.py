"""
Deployment environment detection.

Distinguishes the ephemeral serverless platform (filesystem writes and process
state do not survive between invocations) from long-lived servers and local
development.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

EPHEMERAL_MARKERS = ("VERCEL", "VERCEL_ENV")


@dataclass(frozen=True)
class DeploymentEnvironment:
    is_ephemeral_platform: bool
    is_production: bool

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "DeploymentEnvironment":
        env = os.environ if environ is None else environ
        app_env = env.get("FLASK_ENV") or env.get("APP_ENV") or "development"
        return cls(
            is_ephemeral_platform=any(env.get(marker) for marker in EPHEMERAL_MARKERS),
            is_production=app_env == "production",
        )

    @property
    def deployment_type(self) -> str:
        if self.is_ephemeral_platform:
            return "ephemeral"
        if self.is_production:
            return "server"
        return "development"

    def can_modify_config(self) -> bool:
        return not self.is_ephemeral_platform

    def supports_hot_reload(self) -> bool:
        return not self.is_ephemeral_platform
