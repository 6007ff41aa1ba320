"""Configuration for the course assistant using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent.parent  # src/course_assistant/ → project root


class Settings(BaseSettings):
    """All settings, loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # OpenAI-compatible upstream
    # ------------------------------------------------------------------
    openai_api_key: str = ""
    openai_base_url: str | None = None
    upstream_max_attempts: int = 3

    # Chat model
    chat_model: str = "gpt-4"
    chat_temperature: float = 0.7
    chat_max_tokens: int = 2000

    # Embedding model (dimensions left to the model unless set explicitly)
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int | None = None

    # ------------------------------------------------------------------
    # Knowledge indexing / retrieval
    # ------------------------------------------------------------------
    chunk_size: int = 1000
    search_limit: int = 5
    search_min_score: float = 0.7
    chat_context_limit: int = 5
    chat_context_min_score: float = 0.5

    # ------------------------------------------------------------------
    # Conversation history
    # ------------------------------------------------------------------
    history_prompt_limit: int = 10
    history_hydrate_limit: int = 20

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    db_path: Path = _PROJECT_ROOT / "database" / "course_assistant.sqlite"

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def validate_runtime(self) -> None:
        """Check that all required values are present.

        Call this at application startup (not at import time) so that
        tests can override settings before validation runs.
        """
        if not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY not set. Add it to .env")
        if self.upstream_max_attempts < 1:
            raise ValueError("UPSTREAM_MAX_ATTEMPTS must be at least 1")


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings singleton."""
    return Settings()
