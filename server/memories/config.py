"""
Configuration and settings for the memories backend.
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

    port: int = Field(default=3000, env="PORT")
    # Comma-separated list of allowed browser origins.
    cors_origins: str = Field(
        default=(
            "http://localhost:5500,http://127.0.0.1:5500,"
            "http://localhost:3000,https://moscowwalking.github.io"
        ),
        env="CORS_ORIGINS",
    )

    # Mail
    mail_provider: str = Field(default="unisender", env="MAIL_PROVIDER")
    mail_from: str = Field(
        default="test@sandbox-7833842-f4b715.unigosendbox.com", env="MAIL_FROM"
    )
    mail_from_name: str = Field(default="Sweet Dreams", env="MAIL_FROM_NAME")
    default_recipient: str = Field(
        default="test@sandbox-7833842-f4b715.unigosendbox.com",
        env="DEFAULT_RECIPIENT",
    )
    extra_recipients: str = Field(default="", env="EXTRA_RECIPIENTS")
    unisender_api_key: Optional[str] = Field(default=None, env="UNISENDER_API_KEY")
    sendgrid_api_key: Optional[str] = Field(default=None, env="SENDGRID_API_KEY")
    resend_api_key: Optional[str] = Field(default=None, env="RESEND_API_KEY")
    smtp_host: str = Field(default="smtp.mail.ru", env="SMTP_HOST")
    smtp_port: int = Field(default=465, env="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, env="SMTP_USER")
    smtp_password: Optional[str] = Field(default=None, env="SMTP_PASSWORD")

    # Calendar
    timezone: str = Field(default="Europe/Moscow", env="TIMEZONE")
    ics_uid_domain: str = Field(default="sweet-dreams", env="ICS_UID_DOMAIN")

    # S3-compatible object storage
    s3_endpoint: Optional[str] = Field(default=None, env="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, env="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, env="S3_BUCKET")
    s3_access_key: Optional[str] = Field(default=None, env="S3_ACCESS_KEY")
    s3_secret_key: Optional[str] = Field(default=None, env="S3_SECRET_KEY")
    # Base URL for public object links; derived from endpoint + bucket if unset.
    s3_public_url: Optional[str] = Field(default=None, env="S3_PUBLIC_URL")

    # Places document
    places_file: str = Field(default="places.json", env="PLACES_FILE")
    convert_heic: bool = Field(default=True, env="CONVERT_HEIC")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def extra_recipient_list(self) -> list[str]:
        return [r.strip() for r in self.extra_recipients.split(",") if r.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
