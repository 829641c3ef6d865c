"""
API configuration and settings management.
"""
import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration.

    Values are read from the environment (and a local ``.env`` file) when the
    module is imported; keyword overrides apply to a single instance only.
    """

    # Server
    PORT: int = int(os.getenv("PORT", "5000"))

    # Database
    DB_PATH: str = os.getenv("MARKET_DB", "./data/agromarket.db")

    # Auth
    JWT_SECRET: str = os.getenv("JWT_SECRET", "")
    JWT_ALGORITHM: str = "HS256"
    TOKEN_TTL_SECONDS: int = 60 * 60 * 24 * 4

    # Uploads
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "./uploads")
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024
    MAX_LISTING_IMAGES: int = 5

    # API settings
    API_TITLE: str = "Agromarket API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Classifieds marketplace for farm produce, inputs and machinery"

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    def __init__(self, **overrides: Any) -> None:
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown configuration key: {key}")
            setattr(self, key, value)

    def validate(self) -> None:
        """Validate configuration on startup."""
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET is not configured")
        if not self.DB_PATH:
            raise ValueError("Database path not configured")
