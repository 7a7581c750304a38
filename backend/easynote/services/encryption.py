"""
Reversible encryption for sensitive configuration values stored in the
settings table.

Values read from the environment or the local override file are operator
supplied and stay plaintext; only values written to the database go through
this helper.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset(
    {
        "DATABASE_AUTH_TOKEN",
        "TURSO_AUTH_TOKEN",
        "OPENAI_API_KEY",
        "S3_SECRET_ACCESS_KEY",
        "ADMIN_PASSWORD",
    }
)


def is_sensitive(key: str) -> bool:
    return key in SENSITIVE_KEYS


def derive_key(secret: str) -> bytes:
    """Turn an arbitrary passphrase into a Fernet key (sha256, urlsafe base64)."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class ConfigEncryption:
    """
    Fernet wrapper keyed from CONFIG_ENCRYPTION_KEY.

    Without a configured secret a random key is generated for the lifetime of
    this object, so anything encrypted with it is unreadable after a restart.
    """

    def __init__(self, secret: Optional[str] = None):
        if secret:
            key = derive_key(secret)
        else:
            key = Fernet.generate_key()
            logger.warning(
                "CONFIG_ENCRYPTION_KEY not set; using a session-only key. "
                "Encrypted settings will NOT be readable after a restart."
            )
        self.fernet = Fernet(key)
        self.has_persistent_key = bool(secret)

    def encrypt(self, value: str) -> str:
        return self.fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self.fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeEncodeError) as e:
            raise ValueError("Invalid encrypted value") from e
