"""Application settings loaded from environment variables.

Defines all environment-driven configuration used by the extraction pipeline.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed configuration model for the application."""

    # LLM parameters
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: Optional[str] = None
    LLM_TIMEOUT_SECONDS: float = 60.0

    # Rendering proxy (ScraperAPI)
    SCRAPER_API_KEY: Optional[str] = None
    SCRAPER_API_URL: str = "http://api.scraperapi.com/"
    SCRAPER_API_COUNTRY_CODE: str = "us"

    # Google Shopping lookup (Serper); the direct strategy skips it when unset
    SERPER_API_KEY: Optional[str] = None
    SERPER_API_URL: str = "https://google.serper.dev/shopping"

    # Validation rules
    PRICE_BAND_MIN: Optional[Decimal] = None
    PRICE_BAND_MAX: Optional[Decimal] = None
    PLACEHOLDER_IMAGE_HOSTS: list[str] = [
        "example.com",
        "placeholder.com",
        "via.placeholder.com",
        "placehold.it",
        "placehold.co",
        "dummyimage.com",
        "placekitten.com",
        "picsum.photos",
    ]

    # Strategy order used when the caller does not pick one
    DEFAULT_STRATEGIES: list[str] = ["direct", "browser"]

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
