"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Loaded from COTASK_* environment variables or a .env file when not provided
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    WORKING_DIR: str = "."

    # LLM Configuration
    PROVIDER: str = "openai"  # Options: openai, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None  # OpenAI-compatible servers
    ANTHROPIC_API_KEY: str | None = None
    TEMPERATURE: float = 0.2
    REQUEST_TIMEOUT: float = 120.0  # seconds per provider request

    # Model tiers used by the agents
    FAST_MODEL: str = "gpt-4o-mini"
    FAST_MODEL_MAX_CONTEXT: int = 128_000
    QUALITY_MODEL: str = "gpt-4o"
    QUALITY_MODEL_MAX_CONTEXT: int = 128_000
    ONLINE_MODEL: str = "gpt-4o"  # research agent
    ONLINE_MODEL_MAX_CONTEXT: int = 128_000

    # Conversation loop
    MAX_TURNS: int = 50  # provider calls per agent conversation
    MAX_PROVIDER_RETRIES: int = 5  # empty / truncated completions per call

    # Tools
    COMMAND_TIMEOUT: int = 300  # seconds
    AUTO_APPROVE_COMMANDS: bool = False

    class Config:
        """Configuration for Pydantic settings."""

        env_prefix = "COTASK_"
        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
