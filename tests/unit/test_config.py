"""Unit tests for resource_aggregator.config - Settings loading and validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import SecretStr, ValidationError

from resource_aggregator.config import (
    APISettings,
    ArticleSettings,
    CacheSettings,
    LLMSettings,
    Settings,
    VideoSearchSettings,
    format_validation_error,
)
from resource_aggregator.exceptions import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("GEMINI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(name, raising=False)


# ---- Sub-model defaults ------------------------------------------------------


class TestLLMSettings:
    """LLMSettings defaults and key resolution."""

    def test_default_values(self) -> None:
        s = LLMSettings()
        assert s.provider == "google"
        assert s.model == "gemini-2.5-flash"
        assert s.retries == 3
        assert s.api_key is None

    def test_invalid_temperature_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LLMSettings(temperature=3.0)

    def test_explicit_key_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        s = LLMSettings(api_key=SecretStr("explicit"))
        assert s.resolve_api_key() == "explicit"

    def test_falls_back_to_provider_env_var(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        s = LLMSettings(provider="openai")
        assert s.resolve_api_key() == "sk-test"

    def test_no_key_resolves_to_none(self) -> None:
        assert LLMSettings().resolve_api_key() is None

    def test_api_key_not_leaked_in_repr(self) -> None:
        s = LLMSettings(api_key=SecretStr("super-secret"))
        assert "super-secret" not in repr(s)


class TestScrapeSettings:
    """Video and article scraping bounds."""

    def test_video_defaults(self) -> None:
        s = VideoSearchSettings()
        assert s.timeout == 6.0
        assert s.max_redirects == 3
        assert s.max_results == 5
        assert s.max_queries == 2

    def test_article_defaults(self) -> None:
        s = ArticleSettings()
        assert s.timeout == 4.0
        assert s.max_candidates == 10
        assert s.max_results == 5
        assert s.max_concurrent == 10

    def test_zero_results_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ArticleSettings(max_results=0)


class TestCacheAndAPISettings:
    """Cache TTL and API auth defaults."""

    def test_cache_defaults(self) -> None:
        s = CacheSettings()
        assert s.ttl_seconds == 300.0
        assert s.max_entries is None

    def test_api_defaults(self) -> None:
        s = APISettings()
        assert s.port == 8000
        assert s.cookie_name == "auth-token"
        assert s.jwt_algorithm == "HS256"
        assert s.jwt_secret is None

    def test_missing_jwt_secret_is_a_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="jwt_secret"):
            APISettings().require_jwt_secret()
        with pytest.raises(ConfigurationError):
            APISettings(jwt_secret="").require_jwt_secret()

    def test_configured_jwt_secret_returned(self) -> None:
        assert APISettings(jwt_secret="s3cret").require_jwt_secret() == "s3cret"


# ---- Top-level Settings ------------------------------------------------------


class TestSettings:
    """Top-level Settings layering."""

    def test_nested_env_var_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESOURCE_AGGREGATOR_VIDEOS__MAX_RESULTS", "3")
        s = Settings()
        assert s.videos.max_results == 3

    def test_load_with_overrides(self) -> None:
        s = Settings.load(cache={"ttl_seconds": 60})
        assert s.cache.ttl_seconds == 60

    def test_extra_fields_ignored(self) -> None:
        s = Settings(unknown_field="ignored")  # type: ignore[call-arg]
        assert isinstance(s.llm, LLMSettings)

    def test_yaml_file_loaded(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text("articles:\n  timeout: 2.5\nllm:\n  provider: openai\n")
        s = Settings.load(config_path=yaml_file)
        assert s.articles.timeout == 2.5
        assert s.llm.provider == "openai"

    def test_missing_yaml_uses_defaults(self, tmp_path: Path) -> None:
        s = Settings.load(config_path=tmp_path / "nope.yaml")
        assert s.llm.provider == "google"

    def test_env_var_overrides_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("cache:\n  ttl_seconds: 120\n")
        monkeypatch.setenv("RESOURCE_AGGREGATOR_CACHE__TTL_SECONDS", "30")
        s = Settings.load(config_path=yaml_file)
        assert s.cache.ttl_seconds == 30

    def test_dotenv_file_loaded(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("RESOURCE_AGGREGATOR_API__PORT=9001\n")
        s = Settings()
        assert s.api.port == 9001

    def test_overrides_beat_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESOURCE_AGGREGATOR_API__PORT", "9001")
        s = Settings.load(api={"port": 9100})
        assert s.api.port == 9100


# ---- Validation error formatting ---------------------------------------------


class TestFormatValidationError:
    """format_validation_error should produce user-friendly messages."""

    def test_includes_field_path_and_input(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            LLMSettings(temperature=3.0)
        msg = format_validation_error(exc_info.value)
        assert msg.startswith("Configuration error:")
        assert "temperature" in msg
        assert "3.0" in msg

    def test_multiple_errors_all_shown(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            VideoSearchSettings(timeout=-1, max_results=0)
        msg = format_validation_error(exc_info.value)
        assert "timeout" in msg
        assert "max_results" in msg
