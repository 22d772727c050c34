"""Configuration settings for Ad Studio."""

from functools import lru_cache

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    app_name: str = "Ad Studio"
    debug: bool = False
    log_level: str = "INFO"

    # Database (key-value table holding versions and mixer state)
    database_url: str = "sqlite:///./adstudio.db"

    # CORS
    cors_origins: List[str] = ["*"]

    # Owner recorded on lazily created ads when no session header is sent
    default_owner: str = "default-session"

    class Config:
        env_file = ".env"


settings = Settings()


@lru_cache()
def get_version_store():
    """
    Shared version store for the configured database.
    Routers take it as a dependency so tests can swap in an in-memory store.
    """
    from adstudio.services.store import KeyValueStore
    from adstudio.services.versions import VersionStore

    return VersionStore(KeyValueStore(settings.database_url))
