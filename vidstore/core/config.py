"""vidstore configuration, loaded from environment variables and .env."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _validate_hex_key(value: str, name: str) -> str:
    if len(value) != 64:
        raise ValueError(
            f"{name} must be exactly 64 hex characters (32 bytes). "
            f"Got {len(value)} characters. "
            f'Generate a key with: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    try:
        bytes.fromhex(value)
    except ValueError as e:
        raise ValueError(f"{name} must be valid hexadecimal: {e}") from e
    return value


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "vidstore"
    app_version: str = "0.3.0"
    debug: bool = False

    log_level: str = "INFO"
    log_format: Literal["structured", "dev"] = "dev"

    cors_origins: str = "http://localhost:5173"

    # Field encryption (AES-256-CBC)
    vidstore_encryption_key: str
    # Previous key, accepted for decryption only while a rotation is in progress
    vidstore_encryption_key_old: str | None = None
    # Passphrase used by the salted format written before the keyed codec existed
    legacy_passphrase: str | None = None

    # Appwrite
    appwrite_endpoint: str = "https://fra.cloud.appwrite.io/v1"
    appwrite_project_id: str = ""
    appwrite_api_key: str = ""
    appwrite_timeout_seconds: float = 30.0

    database_id: str = "video_site_db"
    database_name: str = "Video Site Database"
    video_collection_id: str = "videos"
    user_collection_id: str = "users"
    site_config_collection_id: str = "site_config"
    session_collection_id: str = "sessions"
    videos_bucket_id: str = "videos_bucket"
    thumbnails_bucket_id: str = "thumbnails_bucket"

    # Sessions
    session_lifetime_hours: int = 24
    session_cache_ttl_seconds: float = 30.0
    session_cache_log_interval_seconds: float = 5.0
    # Set false only for plain-http local development
    session_cookie_secure: bool = True

    # Provisioning readiness polling
    provisioning_poll_interval_seconds: float = 0.5
    provisioning_ready_timeout_seconds: float = 30.0

    # Stripe (fallback when the site config document has no key)
    stripe_secret_key: str | None = None
    stripe_api_base: str = "https://api.stripe.com/v1"

    # File standing in for browser local storage (session token, credentials)
    local_state_path: str = ".vidstore/state.json"

    @field_validator("vidstore_encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        return _validate_hex_key(v, "VIDSTORE_ENCRYPTION_KEY")

    @field_validator("vidstore_encryption_key_old")
    @classmethod
    def validate_old_encryption_key(cls, v: str | None) -> str | None:
        if not v:
            return None
        return _validate_hex_key(v, "VIDSTORE_ENCRYPTION_KEY_OLD")

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
