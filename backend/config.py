"""Application settings loaded from the environment or a local .env file."""

from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SESSION_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "development"
    port: int = 5000
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./portfolio.db"
    db_connect_timeout: int = 5
    db_pool_timeout: int = 30

    # Sessions
    session_secret: str = DEFAULT_SESSION_SECRET
    session_max_age: int = 24 * 60 * 60
    session_cookie: str = "portfolio.sid"

    # Remote media host
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:5000"]

    # Uploads
    upload_dir: str = "uploaded_tmp"
    max_photo_bytes: int = 5 * 1024 * 1024
    max_document_bytes: int = 50 * 1024 * 1024
    max_flyer_bytes: int = 10 * 1024 * 1024

    # First-boot administrator
    admin_username: str = "admin"
    admin_password: str = "admin123"

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    if settings.is_production and settings.session_secret == DEFAULT_SESSION_SECRET:
        raise ValueError("SESSION_SECRET must be set in production")
    return settings
