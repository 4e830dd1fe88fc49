from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List, Optional
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can come from:
    - docker-compose.yml environment section
    - .env file (for secrets like API keys)
    - System environment

    Variable names match docker-compose conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (for database)
    - REDIS_URL (for the live change feed)
    - JWT_SECRET_KEY / SECRET_KEY (for identity tokens)
    """

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # JWT - uses SECRET_KEY from .env or generates default
    jwt_secret_key: str = Field(default="dev-secret-key-change-in-production", validate_default=True)
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # Storage: "memory" (single process) or "postgres"
    storage_backend: str = "memory"

    # PostgreSQL (from docker-compose)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "eventease_user"
    postgres_password: str = "eventease_pass"
    postgres_db: str = "eventease"
    database_url: Optional[str] = Field(default=None, validate_default=True)

    # Redis live feed (cross-process fan-out of committed changes)
    redis_url: str = "redis://localhost:6379"
    live_feed_enabled: bool = False
    live_feed_channel: str = "inquiries:changes"

    # Quoting rules
    supported_currencies: List[str] = ["GBP", "USD", "EUR"]
    quote_window_hours: float = 24.0  # 0 disables the window

    # Server-sent events
    sse_heartbeat_seconds: float = 30.0
    live_max_pending: int = 1000  # queued updates per viewer before it is cut off

    # OpenAI (from .env) - description enhancement
    openai_api_key: str = ""
    enhancer_model: str = "gpt-4o-mini"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('jwt_secret_key', mode='before')
    @classmethod
    def get_jwt_secret(cls, v):
        """Use SECRET_KEY from env if JWT_SECRET_KEY not set"""
        if v and v != "dev-secret-key-change-in-production":
            return v
        # Fall back to SECRET_KEY (used in .env)
        return os.getenv('SECRET_KEY', v or 'dev-secret-key-change-in-production')

    @field_validator('supported_currencies')
    @classmethod
    def normalize_currencies(cls, v):
        """Currency codes are compared upper-case"""
        return [c.strip().upper() for c in v]

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host', 'localhost')
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'eventease_user')
        password = data.get('postgres_password', 'eventease_pass')
        db = data.get('postgres_db', 'eventease')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
