"""
Settings Configuration
Pydantic-validated configuration for the digest engine
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class GeneralSettings(BaseSettings):
    """Shared HTTP settings"""
    request_timeout: int = Field(default=30, description="HTTP request timeout (seconds)")
    max_retries: int = Field(default=2, description="Attempts per source fetch")
    retry_delay: int = Field(default=1, description="Base retry delay (seconds)")
    user_agent: str = Field(default="FeedDigest/1.0", description="User-Agent for feed requests")


class LLMSettings(BaseSettings):
    """Summarization provider settings"""
    default_provider: str = Field(default="deepseek", description="Used when no credentialed provider is found")
    provider_order: List[str] = Field(default_factory=lambda: ["deepseek", "grok"], description="Provider preference order")

    temperature: float = Field(default=0.3, description="Generation temperature")
    max_tokens: int = Field(default=1000, description="Max generated tokens")
    request_timeout: float = Field(default=60.0, description="SDK-level request timeout (seconds)")
    call_timeout: float = Field(default=45.0, description="Caller-side race timeout per item (seconds)")
    max_attempts: int = Field(default=1, description="Enrichment attempts per item before degrading")

    # API Keys
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API Key")
    grok_api_key: Optional[str] = Field(default=None, description="Grok API Key")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")

    # Endpoints / models (None = provider default)
    deepseek_base_url: Optional[str] = Field(default=None)
    grok_base_url: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    deepseek_model: Optional[str] = Field(default=None)
    grok_model: Optional[str] = Field(default=None)
    openai_model: Optional[str] = Field(default=None)

    class Config:
        env_prefix = "LLM_"


class PipelineSettings(BaseSettings):
    """Step pipeline limits"""
    fetch_limit_per_source: int = Field(default=20, description="Max candidates fetched per source")
    max_news_per_source: int = Field(default=5, description="Max new items processed per source per run")
    max_content_chars: int = Field(default=6000, description="Item text truncated before prompting")

    class Config:
        env_prefix = "PIPELINE_"


class SchedulerSettings(BaseSettings):
    """Recurring dispatcher tick"""
    enabled: bool = Field(default=False, description="Start the scheduler with the app")
    poll_interval_seconds: float = Field(default=30.0, description="Tick interval (seconds)")
    collection_interval_seconds: float = Field(default=21600.0, description="Auto-create a collection job this often; 0 disables")
    provider: Optional[str] = Field(default=None, description="Provider for auto-created jobs")
    worker_count: int = Field(default=1, description="Step queue consumers")

    class Config:
        env_prefix = "SCHEDULER_"


class StorageSettings(BaseSettings):
    """Persistence"""
    backend: str = Field(default="sqlite", description="sqlite or memory")
    database_path: str = Field(default="./data/feed_digest.db", description="SQLite database file")

    class Config:
        env_prefix = "STORAGE_"


class Settings(BaseSettings):
    """Aggregated settings"""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading ``config/.env`` first when present."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            general=GeneralSettings(),
            llm=LLMSettings(),
            pipeline=PipelineSettings(),
            scheduler=SchedulerSettings(),
            storage=StorageSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_general_settings() -> GeneralSettings:
    return get_settings().general


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_scheduler_settings() -> SchedulerSettings:
    return get_settings().scheduler


def get_storage_settings() -> StorageSettings:
    return get_settings().storage
