from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )
    # Application
    app_name: str = "Workboard"
    app_version: str = "1.0.0"
    app_url: str = Field(default="http://localhost:8000")
    debug: bool = Field(default=False)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./workboard.db")
    database_echo: bool = Field(default=False)

    # Authentication & Security
    secret_key: str = Field(default="change-me")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Completion cascade
    completion_worker_enabled: bool = Field(default=True)
    completion_queue_max_size: int = Field(default=1000)

    # Sprint lifecycle
    sprint_close_requires_tasks: bool = Field(default=False)

    # CORS
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()


# Environment-specific configurations
class DevelopmentConfig(Settings):
    debug: bool = True
    log_level: str = "DEBUG"


class ProductionConfig(Settings):
    debug: bool = False
    database_echo: bool = False
    log_level: str = "WARNING"


class TestingConfig(Settings):
    database_url: str = "sqlite+aiosqlite:///./test.db"
    secret_key: str = "test-secret-key"
    completion_worker_enabled: bool = False


def get_settings() -> Settings:
    """Factory function to get settings based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    elif env == "testing":
        return TestingConfig()
    else:
        return DevelopmentConfig()
