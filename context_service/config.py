from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Search index (Google Custom Search JSON API)
    google_search_url: str = "https://www.googleapis.com/customsearch/v1"
    search_results_per_query: int = 5
    search_timeout_seconds: float = 15.0

    # Request defaults
    default_max_total_chars: int = 200000

    # Page fetch retry policy
    fetch_attempt_timeout_seconds: float = 10.0
    fetch_max_attempts: int = 3
    fetch_backoff_base_seconds: float = 2.0
    min_content_chars: int = 100

    # Aggregation deadline
    global_timeout_seconds: float = 60.0

    # Shared HTTP client
    dns_cache_ttl_seconds: int = 300
    max_connections: int = 100
    max_keepalive_connections: int = 20

    # App
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
