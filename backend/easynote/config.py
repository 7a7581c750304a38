"""
Configuration management for the application.

Loads environment variables and provides centralized access to the static
settings. Values that can change at runtime (database connection, admin
password, API keys) go through services.config_service.ConfigService instead.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Local configuration override (database connection keys)
    BASE_DIR: Path = Path(__file__).parent.parent
    LOCAL_CONFIG_PATH: Path = Path(
        os.getenv("LOCAL_CONFIG_PATH", str(BASE_DIR / ".easynote" / "config.json"))
    )

    # Blob storage settings
    BLOB_API_URL: str = os.getenv("BLOB_API_URL", "https://blob.vercel-storage.com")
    BLOB_API_VERSION: str = "7"
    BLOB_CAPACITY_BYTES: int = 250 * 1024 * 1024
    BLOB_REQUEST_TIMEOUT: float = float(os.getenv("BLOB_REQUEST_TIMEOUT", "10"))

    # Trash settings
    TRASH_RETENTION_DAYS: int = int(os.getenv("TRASH_RETENTION_DAYS", "30"))

    # Admin password used until one is configured
    DEFAULT_ADMIN_PASSWORD: str = "admin123"
    MIN_PASSWORD_LENGTH: int = 6

    @classmethod
    def trash_retention_ms(cls) -> int:
        return cls.TRASH_RETENTION_DAYS * 24 * 60 * 60 * 1000
