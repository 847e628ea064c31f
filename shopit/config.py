"""
Configuration and settings for the catalog backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    port: int = Field(default=4000)
    log_level: str = Field(default="INFO")

    # Database (any SQLAlchemy URL; Postgres expected in production)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible media storage
    media_endpoint: Optional[str] = Field(default=None)
    media_region: Optional[str] = Field(default=None)
    media_bucket: Optional[str] = Field(default=None)
    media_public_base_url: Optional[str] = Field(default=None)
    media_folder: str = Field(default="products")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Auth
    jwt_secret: str = Field(default="default_secret")
    jwt_expires_seconds: Optional[int] = Field(default=None)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    cart_size: int = Field(default=300, ge=0)

    # CORS
    cors_allowed_origins: list[str] = Field(
        default=[
            "https://shop-it-admin.onrender.com",
            "https://shop-it254.onrender.com",
        ]
    )

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    sweep_on_startup: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
