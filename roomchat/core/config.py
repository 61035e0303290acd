# roomchat/core/config.py
"""Application configuration using Pydantic."""
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    database_url: str
    redis_url: str
    jwt_secret_key: str

    app_name: str = 'roomchat'
    app_version: str = '1.0.0'
    environment: str = 'development'
    log_level: str = 'info'
    allowed_origins: List[str] = ['*']
    auto_create_tables: bool = False

    # Sessions and tokens
    jwt_algorithm: str = 'HS256'
    access_token_minutes: int = 20
    session_initial_ttl_seconds: int = 20 * 60
    session_ttl_days: int = 20
    remember_me_session_ttl_days: int = 30
    invite_token_days: int = 3

    # Presence
    presence_online_ttl: int = 30
    presence_offline_ttl: int = 24 * 60 * 60
    room_presence_ttl: int = 24 * 60 * 60
    heartbeat_interval: float = 15.0

    # Message validation
    message_max_length: int = 2000
    blocked_words: List[str] = []

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }

@lru_cache
def get_settings() -> Settings:
    return Settings()
