"""
Configuration settings for the MedVault records API.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./medvault.db"

    # JWT Authentication
    secret_key: str = "your-super-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60  # 7 days
    cookie_name: str = "token"

    # Password hashing
    bcrypt_rounds: int = 12

    # Account lockout
    max_login_attempts: int = 5
    lockout_minutes: int = 120

    # One-time tokens
    password_reset_expire_minutes: int = 10
    email_verification_expire_hours: int = 24

    # Rate limiting (requests per window, per origin)
    auth_rate_limit: int = 5
    auth_rate_window_minutes: int = 15
    password_reset_rate_limit: int = 3
    password_reset_rate_window_minutes: int = 60
    sensitive_rate_limit: int = 5
    sensitive_rate_window_minutes: int = 15

    # Shared rate-limit store; in-process windows are used when unset
    redis_url: Optional[str] = None

    # File Storage
    upload_dir: str = "./uploads"

    # Environment
    environment: str = "development"
    debug: bool = False

    # API Settings
    api_prefix: str = "/api"
    project_name: str = "MedVault Records API"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
