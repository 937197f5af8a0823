"""Configuration with layered resolution: defaults -> YAML -> env -> overrides.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``RESOURCE_AGGREGATOR_`` prefixed env vars,
and nested delimiter ``__`` for overriding sub-model fields.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from resource_aggregator.exceptions import ConfigurationError

_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Environment variables consulted when no key is configured explicitly.
_PROVIDER_KEY_ENV: dict[str, str] = {
    "google": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class LLMSettings(BaseModel):
    """Generative-AI backend configuration."""

    provider: Literal["google", "openai", "anthropic"] = "google"
    model: str = "gemini-2.5-flash"
    api_key: SecretStr | None = Field(
        default=None,
        description="Explicit API key; falls back to the provider's env var.",
    )
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    timeout: int = Field(default=60, gt=0, description="Request timeout in seconds.")
    retries: int = Field(default=3, ge=1, le=10)

    def resolve_api_key(self) -> str | None:
        """Return the configured key, or the provider's env var value."""
        if self.api_key is not None and self.api_key.get_secret_value():
            return self.api_key.get_secret_value()
        return os.environ.get(_PROVIDER_KEY_ENV[self.provider]) or None


class VideoSearchSettings(BaseModel):
    """Video search scraping configuration."""

    search_url: str = "https://www.youtube.com/results"
    timeout: float = Field(default=6.0, gt=0.0)
    max_redirects: int = Field(default=3, ge=0)
    max_results: int = Field(default=5, gt=0)
    max_queries: int = Field(
        default=2, gt=0, description="Generated queries actually searched."
    )
    max_concurrent: int = Field(default=10, gt=0)
    user_agent: str = _BROWSER_USER_AGENT


class ArticleSettings(BaseModel):
    """Article metadata fetching configuration."""

    timeout: float = Field(default=4.0, gt=0.0)
    max_candidates: int = Field(
        default=10, gt=0, description="URLs fetched per validation batch."
    )
    max_results: int = Field(default=5, gt=0)
    max_concurrent: int = Field(default=10, gt=0)
    user_agent: str = _BROWSER_USER_AGENT


class CacheSettings(BaseModel):
    """In-memory TTL cache configuration."""

    ttl_seconds: float = Field(default=300.0, gt=0.0)
    max_entries: int | None = Field(
        default=None, gt=0, description="Optional size bound; None is unbounded."
    )


class StorageSettings(BaseModel):
    """Chat transcript persistence."""

    chat_store_path: Path = Path("./data/chats.json")


class APISettings(BaseModel):
    """FastAPI server settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    jwt_secret: SecretStr | None = None
    jwt_algorithm: str = "HS256"
    cookie_name: str = "auth-token"
    token_ttl_hours: int = Field(default=24 * 7, gt=0)

    def require_jwt_secret(self) -> str:
        """Return the token signing secret.

        Raises:
            ConfigurationError: If no secret is configured.
        """
        if self.jwt_secret is None or not self.jwt_secret.get_secret_value():
            msg = (
                "api.jwt_secret is not set; configure it or export "
                "RESOURCE_AGGREGATOR_API__JWT_SECRET"
            )
            raise ConfigurationError(msg)
        return self.jwt_secret.get_secret_value()


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``config.yaml`` or an explicit path)
        3. Environment variables (prefixed ``RESOURCE_AGGREGATOR_``)
        4. Programmatic overrides passed to ``Settings.load``
    """

    model_config = SettingsConfigDict(
        env_prefix="RESOURCE_AGGREGATOR_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    llm: LLMSettings = Field(default_factory=LLMSettings)
    videos: VideoSearchSettings = Field(default_factory=VideoSearchSettings)
    articles: ArticleSettings = Field(default_factory=ArticleSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings > env_settings > dotenv (.env) > yaml > defaults

        Args:
            settings_cls: The settings class.
            init_settings: Init / programmatic overrides.
            env_settings: Environment variable source.
            dotenv_settings: Dotenv file source (.env).
            file_secret_settings: Secret file source (unused).

        Returns:
            Ordered tuple of settings sources (first = highest priority).
        """
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
        ]

        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file))

        return tuple(sources)

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with an optional config path and overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
