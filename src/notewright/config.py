"""Configuration settings for the application."""

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    VAULT_DIR: str = "./vault"

    # Model provider
    PROVIDER: str = "gemini"  # Options: gemini, openai
    GOOGLE_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    TEMPERATURE: float = 0.55
    REQUEST_TIMEOUT: float = 120.0

    # Turn loop
    MAX_TURNS: int = 23
    MAX_RETRIES: int = 7

    # Vault presentation
    TREE_DEPTH: int = 3
    TREE_DETAIL_LINES: int = 23
    PROTECTED_MARKERS: List[str] = [".lim"]

    # Retrieval / uploads
    ASK_FILES_MAX_TOKENS: int = 131072
    UPLOAD_CONCURRENCY: int = 4
    ASK_PLAN: bool = False

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
