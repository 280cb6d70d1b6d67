"""Application configuration using Pydantic Settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./storage/article_agent.db"

    # Storage (export files)
    STORAGE_PATH: str = "./storage"

    # Topic configuration source
    TOPIC_CONFIG_SOURCE: str = "local"  # 'local' or 'api'
    TOPIC_CONFIG_LOCAL_PATH: str = "./topics"
    TOPIC_CONFIG_API_URL: Optional[str] = None
    TOPIC_CONFIG_API_KEY: Optional[str] = None
    TOPIC_CONFIG_API_TIMEOUT: float = 10.0

    # Orchestrator
    STAGE_TIMEOUT_SECONDS: float = 300.0
    SHUTDOWN_GRACE_SECONDS: float = 10.0

    # Statistics
    STATS_WINDOW_DAYS: int = 90

    # OpenRouter
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    SITE_URL: str = ""
    SITE_NAME: str = "Article-Agent"
    LLM_TIMEOUT_SECONDS: float = 120.0

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
