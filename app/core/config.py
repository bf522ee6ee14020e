# File: app/core/config.py
"""
Configuration settings for LodgePay.

This module defines application settings using Pydantic's BaseSettings,
which supports environment variable loading and validation.
"""

import json
import secrets
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import AnyHttpUrl, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    This class uses Pydantic's BaseSettings to load configuration from
    environment variables, with validation and type conversion.
    """

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "LodgePay"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Security
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # JWT Settings
    JWT_ALGORITHM: str = "HS256"

    # Roles that count as staff for review, internal comments and verification
    STAFF_ROLES: List[str] = ["admin", "property_manager", "system"]

    BACKEND_CORS_ORIGINS: List[Union[AnyHttpUrl, str]] = []

    @validator("BACKEND_CORS_ORIGINS", "STAFF_ROLES", pre=True)
    def split_list_values(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse list settings given as JSON or comma-separated strings."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                return [i.strip() for i in v.split(",") if i.strip()]
        return v or []

    # Database
    DATABASE_PATH: str = "lodgepay.db"
    DATABASE_URL: Optional[str] = None
    DATABASE_ECHO: bool = False

    @validator("DATABASE_URL", pre=True, always=True)
    def assemble_db_connection(cls, v: Optional[str], values: Dict[str, Any]) -> Any:
        """Fall back to a SQLite file when no URL is configured."""
        if isinstance(v, str) and v:
            return v
        return f"sqlite:///{values.get('DATABASE_PATH', 'lodgepay.db')}"

    # Logging
    LOG_LEVEL: str = "INFO"

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        return v.upper() if v.upper() in valid_levels else "INFO"

    # Payment rules
    DEFAULT_CURRENCY: str = "USD"
    PERCENTAGE_TOLERANCE: Decimal = Decimal("0.01")
    RULE_NAME_MAX_LENGTH: int = 100

    # Refunds
    REFUND_COMMENT_MAX_LENGTH: int = 2000
    REFUND_DOCUMENT_MAX_BYTES: int = 10 * 1024 * 1024  # 10 MB
    REFUND_DOCUMENT_ALLOWED_TYPES: List[str] = [
        "application/pdf",
        "image/png",
        "image/jpeg",
        "image/jpg",
    ]

    class Config:
        """Pydantic settings configuration."""

        case_sensitive = True
        env_file = ".env"


# Create settings instance
settings = Settings()
