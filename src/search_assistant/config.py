"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openrouter_api_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices("OPENROUTER_API_KEY", "openrouter_api_key"),
    )
    openrouter_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://openrouter.ai/api/v1"),
        validation_alias=AliasChoices("OPENROUTER_BASE_URL", "openrouter_base_url"),
    )
    openrouter_app_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices(
            "OPENROUTER_APP_URL",
            "HTTP_REFERER",
            "openrouter_app_url",
        ),
    )
    openrouter_app_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "OPENROUTER_APP_TITLE",
            "X_TITLE",
            "openrouter_app_name",
        ),
    )
    default_model: str = Field(
        default="openai/gpt-4o-mini",
        validation_alias=AliasChoices(
            "OPENROUTER_DEFAULT_MODEL",
            "default_model",
        ),
    )
    related_model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RELATED_QUESTIONS_MODEL", "related_model"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("OPENROUTER_TIMEOUT", "request_timeout"),
        ge=1,
    )

    searxng_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("http://localhost:8080"),
        validation_alias=AliasChoices("SEARXNG_BASE_URL", "searxng_base_url"),
    )
    search_timeout: float = Field(
        default=15.0,
        ge=1,
        validation_alias=AliasChoices("SEARCH_TIMEOUT", "search_timeout"),
    )
    search_text_limit: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("SEARCH_TEXT_LIMIT", "search_text_limit"),
    )
    video_limit: int = Field(
        default=8,
        ge=0,
        validation_alias=AliasChoices("VIDEO_LIMIT", "video_limit"),
    )

    web_reader_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://r.jina.ai"),
        validation_alias=AliasChoices("WEB_READER_BASE_URL", "web_reader_base_url"),
    )
    web_reader_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("WEB_READER_API_KEY", "JINA_API_KEY"),
    )
    web_page_max_chars: int = Field(
        default=20_000,
        ge=1,
        validation_alias=AliasChoices("WEB_PAGE_MAX_CHARS", "web_page_max_chars"),
    )

    database_path: Path = Field(
        default_factory=lambda: Path("data/search_assistant.db"),
        validation_alias=AliasChoices("DATABASE_PATH", "database_path"),
    )

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )
    log_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )
    log_retention_hours: int = Field(
        default=48,
        ge=0,
        validation_alias=AliasChoices("LOG_RETENTION_HOURS", "log_retention_hours"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
