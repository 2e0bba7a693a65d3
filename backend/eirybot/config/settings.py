# /eirybot/config/settings.py

from typing import Annotated, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017/eirybot_demo"
    max_pool_size: int = 10
    min_pool_size: int = 1
    mongo_ssl: bool = False
    sessions_collection: str = "demo_sessions"
    events_collection: str = "demo_events"

    # Demo sessions
    session_ttl_hours: int = 24
    default_language: str = "es"
    supported_languages: Annotated[List[str], NoDecode] = ["es", "en"]
    entry_flow_id: str = "main"
    router_step_id: str = "goal_router"

    # Security
    api_key: str | None = None

    # Deployment
    workers: int = 2
    environment: str = Field(default="production")
    log_level: str = "INFO"
    # Third-party loggers that only add noise at INFO
    quiet_loggers: Annotated[List[str], NoDecode] = ["uvicorn.access", "pymongo"]

    cors_allowed_origins: Annotated[List[str], NoDecode] = Field(
        default=[
            "https://eirybot.com",
            "https://www.eirybot.com",
        ]
    )

    allowed_hosts: str = Field(default="eirybot.com,*.eirybot.com,localhost,127.0.0.1")

    # App Metadata & Limits
    api_version: str = "v1"
    rate_limit_per_minute: int = 100
    event_rate_limit_per_minute: int = 60

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---------------- Validators ---------------- #

    @field_validator("cors_allowed_origins", "supported_languages", "quiet_loggers", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        """
        Accept both comma-separated strings and lists, so values can come
        straight from environment variables.
        """
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL '{v}'")
        return level

    @field_validator("session_ttl_hours")
    @classmethod
    def ttl_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("SESSION_TTL_HOURS must be a positive number of hours")
        return v


settings = Settings()
