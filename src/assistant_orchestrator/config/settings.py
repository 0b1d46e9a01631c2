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
    app_release: str = ""
    log_level: str = "INFO"
    trace_mode: str = "off"
    webhook_path: str = "/webhooks/whatsapp"
    webhook_secret: str = ""
    allowed_sender: str = ""

    storage_backend: str = "postgres"
    database_url: str = ""

    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=30.0, ge=0.5)
    llm_temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    openai_api_key: str = ""
    max_tool_rounds: int = Field(default=8, ge=1, le=32)

    prompt_path: str = ""
    prompt_cache_ttl_s: float = Field(default=180.0, ge=0.0)
    timezone: str = "America/Los_Angeles"

    ledger_base_url: str = "https://secure.splitwise.com/api/v3.0"
    ledger_api_key: str = ""
    ledger_timeout_s: float = Field(default=10.0, ge=0.5)
    ledger_max_retries: int = Field(default=2, ge=0)
    ledger_backoff_s: float = Field(default=1.0, ge=0.0)

    media_host_suffix: str = ".nexmo.com"
    media_dir: str = ""
    media_timeout_s: float = Field(default=15.0, ge=0.5)

    vonage_api_key: str = ""
    vonage_api_secret: str = ""
    vonage_api_host: str = "https://messages-sandbox.nexmo.com"
    vonage_from_number: str = ""

    model_config = SettingsConfigDict(
        env_prefix="ASSISTANT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")

    def resolved_ledger_api_key(self) -> str:
        return self.ledger_api_key or os.getenv("SPLITWISE_API_KEY", "")

    def resolved_release(self) -> str:
        return self.app_release or os.getenv("CURRENT_COMMIT", "unknown")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
