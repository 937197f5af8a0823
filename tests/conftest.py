"""Shared pytest fixtures for the resource-aggregator test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from resource_aggregator.cache import TTLCache
from resource_aggregator.config import Settings
from resource_aggregator.llm import GenerationResult

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from resource_aggregator.models import HistoryTurn


# ---------------------------------------------------------------------------
# Fake AI backend
# ---------------------------------------------------------------------------


class FakeLLM:
    """Scripted ``TextGenerator``.

    ``responses`` maps a substring of the prompt to the result (or the
    exception to raise) for prompts containing it. The first match wins;
    unmatched prompts answer ``default``.
    """

    def __init__(self, default: str = "") -> None:
        self.default = default
        self.responses: dict[str, GenerationResult | BaseException] = {}
        self.calls: list[dict[str, Any]] = []

    def on(self, marker: str, text: str = "", citations: list[Any] | None = None) -> None:
        self.responses[marker] = GenerationResult(text=text, citations=citations or [])

    def fail(self, marker: str, exc: BaseException) -> None:
        self.responses[marker] = exc

    async def generate(
        self,
        prompt: str,
        *,
        history: Sequence[HistoryTurn] | None = None,
        grounding: bool = False,
    ) -> GenerationResult:
        self.calls.append(
            {"prompt": prompt, "history": list(history or []), "grounding": grounding}
        )
        for marker, response in self.responses.items():
            if marker in prompt:
                if isinstance(response, BaseException):
                    raise response
                return response
        return GenerationResult(text=self.default)


@pytest.fixture()
def fake_llm() -> FakeLLM:
    """Return a scripted AI backend with no responses configured."""
    return FakeLLM()


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> TTLCache:
    """Return a 300-second TTL cache driven by the fake clock."""
    return TTLCache(ttl_seconds=300.0, clock=clock)


# ---------------------------------------------------------------------------
# Configuration fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Return Settings with offline-safe values and a temporary chat store."""
    for name in (
        "GEMINI_API_KEY",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return Settings.load(
        llm={"api_key": "test-key", "retries": 1},
        storage={"chat_store_path": tmp_path / "chats.json"},
        api={"jwt_secret": "test-secret", "cors_origins": ["http://localhost:3000"]},
        logging={"level": "DEBUG"},
    )
