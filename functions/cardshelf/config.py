"""
Configuration and settings for the card template service.
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

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Record store
    collection_name: str = Field(default="card_templates", env="COLLECTION_NAME")
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # Firebase (Firestore record store + email/password auth)
    firebase_project_id: Optional[str] = Field(
        default=None, env="FIREBASE_PROJECT_ID"
    )
    firebase_credentials_file: Optional[str] = Field(
        default=None, env="FIREBASE_CREDENTIALS_FILE"
    )
    firebase_api_key: Optional[str] = Field(default=None, env="FIREBASE_API_KEY")

    # S3-compatible storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None, env="COS_ENDPOINT")
    cos_region: Optional[str] = Field(default=None, env="COS_REGION")
    cos_bucket: Optional[str] = Field(default=None, env="COS_BUCKET")
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Blob layout
    blob_prefix: str = Field(default="templates", env="BLOB_PREFIX")
    blob_cache_control: str = Field(
        default="public,max-age=31536000", env="BLOB_CACHE_CONTROL"
    )
    download_url_expires_in: int = Field(
        default=3600, env="DOWNLOAD_URL_EXPIRES_IN"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )
    # Operator account for the in-memory auth client
    admin_email: Optional[str] = Field(default=None, env="ADMIN_EMAIL")
    admin_password: Optional[str] = Field(
        default=None, env="ADMIN_PASSWORD"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
