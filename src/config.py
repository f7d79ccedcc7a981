"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings

# ===========================================
# Product Branding
# ===========================================
PRODUCT_NAME = "FlightForm"
PRODUCT_TAGLINE = "Conditional application forms for the drone community."
PRODUCT_VERSION = "1.0.0"
PRODUCT_DESCRIPTION = "Build the form, write the rules. FlightForm decides what respondents see."


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./flightform.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)

    # Rule engine
    max_cascade_passes: int = 10  # Safety valve for calculate rules feeding each other

    # Submissions
    submission_rate_limit: str = "30/minute"

    # Logging
    log_level: str = "INFO"

    # Default user (for single-tenant mode)
    default_user_email: str = "builder@localhost"

    # API Security
    api_key: str = ""  # Set in .env for production

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
