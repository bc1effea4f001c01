"""
Application settings using Pydantic Settings.

Environment variables are loaded from .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.

    Create a .env file in the project root with these values.
    API keys are optional here so the package imports without them;
    the clients that need a key complain loudly when it is missing.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ========================================================================
    # Database
    # ========================================================================
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "legistrack"

    # ========================================================================
    # External APIs
    # ========================================================================

    # Congress.gov API (get key at: https://api.congress.gov/sign-up/)
    CONGRESS_GOV_API_KEY: Optional[str] = None

    # LLM providers for tagging and full-text summaries
    OPENAI_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = None

    # ========================================================================
    # AI Configuration
    # ========================================================================
    TAGGING_MODEL: str = "openai:gpt-4o"
    FALLBACK_TAGGING_MODEL: str = "google-gla:gemini-2.0-flash"
    SUMMARY_MODEL: str = "google-gla:gemini-2.0-flash"

    # ========================================================================
    # Sync Behaviour
    # ========================================================================

    # Can this runtime fetch documents from govinfo.gov / congress.gov directly?
    # Set to False when running behind a proxy or sandbox that blocks them.
    ALLOW_CROSS_ORIGIN_FETCH: bool = True

    # ========================================================================
    # Logging
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # ========================================================================
    # Application
    # ========================================================================
    APP_NAME: str = "LegisTrack"
    APP_VERSION: str = "0.1.0"

    # Environment (development, staging, production)
    ENVIRONMENT: str = "development"


# Singleton instance
settings = Settings()
