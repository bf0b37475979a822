"""
Settings Configuration
Pydantic-based configuration, one settings group per concern.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LLMSettings(BaseSettings):
    """Content generation providers"""
    provider: str = Field(default="openai", description="Default provider: openai, gemini")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    gemini_model: str = Field(default="gemini-1.5-pro", description="Gemini model")
    temperature: float = Field(default=0.0, description="Sampling temperature")
    max_tokens: int = Field(default=4096, description="Max generated tokens")
    timeout_seconds: float = Field(default=60.0, description="Hard timeout per generation call")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API Key")

    class Config:
        env_prefix = "LLM_"


class StorageSettings(BaseSettings):
    """Record store and mirror store"""
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy async URL, e.g. postgresql+asyncpg://... (empty = in-memory)",
    )
    redis_url: Optional[str] = Field(default=None, description="Mirror store Redis URL (empty = in-memory)")
    table_name: str = Field(default="visa_requirements_cache", description="Record store table")
    mirror_collection: str = Field(default="visa_cache", description="Mirror document namespace")

    class Config:
        env_prefix = "STORAGE_"


class CacheSettings(BaseSettings):
    """Freshness policy"""
    freshness_days: int = Field(default=30, description="Records younger than this are served as-is")

    class Config:
        env_prefix = "CACHE_"


class RepopulateSettings(BaseSettings):
    """Bulk repopulation, manual and scheduled"""
    cron_secret: Optional[str] = Field(default=None, description="Shared secret for maintenance endpoints")
    schedule_enabled: bool = Field(default=False, description="Run repopulation on a fixed cadence")
    interval_hours: float = Field(default=720.0, description="Hours between scheduled runs")
    days: int = Field(default=30, description="Staleness cutoff in days")
    limit: int = Field(default=100, description="Max rows per run")
    concurrency: int = Field(default=3, description="Max simultaneous regeneration jobs")
    provider: str = Field(default="openai", description="Provider for scheduled runs")
    error_preview: int = Field(default=10, description="Max error entries in a summary")

    class Config:
        env_prefix = "REPOPULATE_"


class ServerSettings(BaseSettings):
    """HTTP server"""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8787)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    shutdown_grace_seconds: float = Field(default=10.0, description="Wait for in-flight jobs on shutdown")

    class Config:
        env_prefix = "SERVER_"


class Settings(BaseSettings):
    """Aggregate of all settings groups"""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    repopulate: RepopulateSettings = Field(default_factory=RepopulateSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading the given .env file (default: ./.env) first."""
        if env_path is None:
            env_path = Path.cwd() / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            llm=LLMSettings(),
            storage=StorageSettings(),
            cache=CacheSettings(),
            repopulate=RepopulateSettings(),
            server=ServerSettings(),
        )

    def secrets_report(self) -> dict:
        """Which credentials are configured. Booleans only, never values."""
        return {
            "STORAGE_DATABASE_URL": bool(self.storage.database_url),
            "STORAGE_REDIS_URL": bool(self.storage.redis_url),
            "LLM_OPENAI_API_KEY": bool(self.llm.openai_api_key),
            "LLM_GEMINI_API_KEY": bool(self.llm.gemini_api_key),
            "REPOPULATE_CRON_SECRET": bool(self.repopulate.cron_secret),
        }


@lru_cache()
def get_settings() -> Settings:
    """Global settings singleton"""
    return Settings.load_from_env_file()


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_server_settings() -> ServerSettings:
    return get_settings().server
