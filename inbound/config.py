"""Application configuration."""
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.
    
    Environment variables take precedence over .env file.
    This makes it compatible with Docker (uses env vars) and 
    local development (uses .env file).
    """
    
    APP_NAME: str = "Inbound Scan"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    
    # Database
    DATABASE_URL: str = "sqlite:///./inbound.db"
    
    # Session lease: an IN_PROGRESS session whose last_seen is older than
    # this may be taken over by another operator
    SESSION_LEASE_MS: int = 2 * 60 * 1000
    
    # Scanning
    BATCH_SIZE: int = 5
    SKU_CATALOG: str = ""  # comma separated
    SKU_PATTERN: str = ""  # syntax in services/sku_catalog.py
    ITEM_LIST_MAX_LIMIT: int = 200
    
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    
    CORS_ORIGINS: List[str] = ["*"]
    
    model_config = SettingsConfigDict(
        # Only load .env file if it exists (for local dev)
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def lease_seconds(self) -> float:
        return self.SESSION_LEASE_MS / 1000.0


settings = Settings()
