from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    PROJECT_NAME: str = "Family Trip Collaboration API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "local"
    DATABASE_URL: str = "sqlite:///./tripcollab.db"
    SECRET_KEY: str = "changeme"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Link sent in invite e-mails: {FRONTEND_URL}/invite/{token}
    FRONTEND_URL: str = "http://localhost:5173"

    # Collaboration timings
    INVITE_EXPIRE_DAYS: int = 7
    TYPING_TIMEOUT_SECONDS: float = 3.0
    PRESENCE_STALE_SECONDS: float = 30.0

    # Redis configuration
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_EVENTS_CHANNEL: str = "trip_events"
    # Relay hub messages through Redis so several API processes share them
    REDIS_RELAY_ENABLED: bool = False
    PRESENCE_BACKEND: Literal["memory", "redis"] = "memory"

    # Celery configuration
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Outgoing mail; empty host means invites are only logged
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "trips@localhost"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: List[str] | str) -> List[str]:
        """Allow both comma-separated strings and list inputs."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
