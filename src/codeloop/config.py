"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PLANNER: str = "openai"  # Options: openai, anthropic
    MODEL_ID: str | None = None
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_BASE_URL: str | None = None
    MAX_TOKENS: int = 8000
    MODEL_TIMEOUT: float | None = None  # seconds; None waits indefinitely

    # Sandbox Configuration
    WORKDIR: str | None = None  # None -> process working directory at startup
    COMMAND_TIMEOUT: float = 120.0
    MAX_OUTPUT_CHARS: int = 50_000

    # Agent loop
    MAX_ITERATIONS: int | None = None  # None -> loop until the model stops asking for tools

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
