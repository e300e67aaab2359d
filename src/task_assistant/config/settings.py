"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "task-assistant"
    log_level: str = "INFO"
    database_url: str = ""
    assistant_mode: str = "deterministic"
    identity_header: str = "X-User-Id"
    auto_provision_users: bool = True
    display_timezone: str = "Asia/Kolkata"
    max_agent_steps: int = Field(default=20, ge=1)
    tool_timeout_s: float = Field(default=5.0, ge=0.01)
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=30.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.2, ge=0.0)
    model_response_timeout_s: float = Field(default=120.0, ge=0.5)
    openai_api_key: str = ""

    model_config = SettingsConfigDict(
        env_prefix="TASK_ASSISTANT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
