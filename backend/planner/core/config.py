from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Game Systems Planner"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./planner.db"

    # AI providers (keys come from the environment, never from the database)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str | None = None
    OPENAI_DEFAULT_MODEL: str = "gpt-4o-mini"

    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
    ANTHROPIC_DEFAULT_MODEL: str = "claude-3-5-haiku-latest"
    ANTHROPIC_API_VERSION: str = "2023-06-01"

    # Token budgets per feature
    SYNTHESIS_MAX_TOKENS: int = 10240
    REFINE_MAX_TOKENS: int = 4096
    EVOLVE_MAX_TOKENS: int = 4096
    CONVERT_SUGGEST_MAX_TOKENS: int = 1536
    DEFAULT_MAX_TOKENS: int = 4096

    # Prompt size policy applied by the assembler
    CONTEXT_SNAPSHOT_MAX_CHARS: int = 60000
    CONTEXT_DELTA_MAX_CHARS: int = 30000


settings = Settings()  # type: ignore
