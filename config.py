from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Prokerala astrology API (OAuth2 client-credentials)
    PROKERALA_CLIENT_ID: str = ""
    PROKERALA_CLIENT_SECRET: str = ""
    PROKERALA_BASE_URL: str = "https://api.prokerala.com"
    PROKERALA_TOKEN_PATH: str = "/token"
    PROKERALA_KUNDLI_PATH: str = "/v2/astrology/kundli"
    PROKERALA_DASHA_PATH: str = "/v2/astrology/dasha-periods"
    PROKERALA_YEARLY_PATH: str = "/v2/astrology/yearly-forecast"
    PROKERALA_AYANAMSA: int = 1  # Lahiri

    # Access token reuse
    TOKEN_CACHE_ENABLED: bool = True
    TOKEN_EXPIRY_MARGIN_SECONDS: int = 60

    # OpenAI chat completions
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    NO_EXPLANATION_PLACEHOLDER: str = "No explanation received."

    # Upstream calls
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0
    UPSTREAM_MAX_RETRIES: int = 2
    UPSTREAM_RETRY_BACKOFF_SECONDS: float = 0.5

    # Response cache
    CACHE_BACKEND: str = "file"  # "file" or "redis"
    CACHE_DIR: str = "cache"
    CACHE_TTL_SECONDS: int = 86400  # 24 hours
    REDIS_URL: str = "redis://localhost:6379"
    SINGLE_FLIGHT_ENABLED: bool = False

    # Expired-entry sweep
    CACHE_SWEEP_ENABLED: bool = True
    CACHE_SWEEP_INTERVAL_MINUTES: int = 60

    PORT: int = 10000
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
