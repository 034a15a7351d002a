"""
Configuration and settings for the content service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Firebase (Firestore documents, Storage bucket, Auth ID tokens)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)

    # Self-hosted document store (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage (Tencent COS / AWS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    cos_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Admin gate: signed-in users with one of these emails may edit content.
    admin_emails: List[str] = Field(default_factory=list)
    # Static bearer tokens (token -> email) for local development without Firebase Auth.
    dev_tokens: Dict[str, str] = Field(default_factory=dict)

    upload_max_workers: int = Field(default=4, ge=1)
    max_featured_slots: Optional[int] = Field(default=None, ge=1)
    # Editor sessions idle for longer than this are closed.
    editor_session_ttl_seconds: int = Field(default=3600, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
