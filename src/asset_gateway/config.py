"""Service configuration using pydantic-settings."""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Asset gateway configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # R2 Configuration
    ASSET_R2_BUCKET: str = "assets"
    ASSET_R2_ENDPOINT_URL: str = ""  # empty = in-memory store
    ASSET_R2_ACCESS_KEY_ID: str = ""
    ASSET_R2_SECRET_ACCESS_KEY: str = ""

    # Storage key namespace, e.g. "uploads" -> "uploads/<name>"
    ASSET_KEY_PREFIX: str = "uploads"

    # Response cache
    CACHE_DIR: Path = Path("/cache")
    CACHE_ENABLED: bool = True

    # Seconds to wait for pending cache writes on shutdown
    BACKGROUND_DRAIN_TIMEOUT: float = 10.0

    LOG_LEVEL: str = "INFO"


settings = Settings()
