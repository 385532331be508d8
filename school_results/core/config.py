# school_results/core/config.py
"""Application configuration using Pydantic."""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str
    jwt_secret_key: str
    redis_url: Optional[str] = None

    app_name: str = 'school-results'
    app_version: str = '1.0.0'
    environment: str = 'development'
    log_level: str = 'info'
    allowed_origins: List[str] = ['*']

    jwt_algorithm: str = 'HS256'
    access_token_expire_minutes: int = 60 * 24

    # Connection pool shared by all tenants
    db_pool_size: int = 15
    db_max_overflow: int = 25
    db_pool_timeout: int = 60
    db_pool_recycle: int = 1800
    db_echo: bool = False

    statistics_cache_ttl: int = 300
    auto_recalculate_statistics: bool = True

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith('sqlite')


@lru_cache
def get_settings() -> Settings:
    return Settings()
