"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "assistant-orchestrator"
    app_env: str = "dev"
    app_debug: bool = False
    log_level: str = "INFO"
    database_url: str = ""

    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=30.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)
    llm_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=4096, ge=1)
    openai_api_key: str = ""

    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = ""
    embedding_timeout_s: float = Field(default=10.0, ge=0.5)
    embedding_dimensions: int = Field(default=1536, ge=1)

    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    similarity_limit: int = Field(default=10, ge=1, le=100)
    memory_task_limit: int = Field(default=5, ge=0, le=50)
    memory_message_limit: int = Field(default=10, ge=0, le=50)

    context_log_limit: int = Field(default=50, ge=1)
    max_task_steps: int = Field(default=25, ge=1)
    task_lease_ttl_s: float = Field(default=300.0, ge=1.0)

    worker_poll_interval_s: float = Field(default=1.0, ge=0.0)
    job_max_attempts: int = Field(default=5, ge=1)
    job_retry_base_s: float = Field(default=5.0, ge=0.0)
    job_retry_max_s: float = Field(default=600.0, ge=0.0)

    dispatcher_prompt_version: str = "v2"
    continuation_prompt_version: str = "v1"

    model_config = SettingsConfigDict(
        env_prefix="ASSISTANT_ORCHESTRATOR_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("ORCHESTRATOR_DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")

    def resolved_embedding_base_url(self) -> str:
        return self.embedding_base_url or self.llm_base_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
