"""Library configuration using Pydantic settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Debug-level logging
    debug: bool = False

    # Firebase (Firestore + Storage)
    firebase_credentials_json: str | None = None
    firebase_credentials_path: str | None = None
    firebase_project_id: str | None = None
    storage_bucket: str = "linkstore-65562.firebasestorage.app"

    # Local cache: general tier (Redis)
    redis_url: str = "redis://localhost:6379/0"
    cache_namespace: str = "linkstore"

    # Local cache: secure tier (encrypted files). Empty key disables the tier.
    cache_dir: str = ".linkstore-cache"
    cache_encryption_key: str = ""

    # Claim usernames/{slug} documents when allocating store usernames
    slug_reservations_enabled: bool = True

    # Public storefront links
    storefront_base_url: str = "https://linkstore.app"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
