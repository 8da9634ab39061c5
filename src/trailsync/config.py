from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./trailsync.db"
    remote_api_url: str = "http://localhost:5000/api"
    remote_api_key: str = ""
    remote_timeout_seconds: float = 30.0
    auto_sync_enabled: bool = True
    auto_sync_interval_minutes: int = 5
    max_retries: int = 5
    force_sync_limit: int = 1000
    detect_remote_deletions: bool = False
    user_id: int = 1  # single-user MVP; multi-user: swap for JWT claim

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
