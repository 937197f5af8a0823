"""Provider-agnostic generative-AI client with retry and search grounding.

Wraps ``litellm.acompletion`` behind a small ``generate`` call that takes a
prompt, optional conversation history, and an optional search-grounding
flag, and returns the answer text plus any grounding citations. Transient
failures are retried with bounded exponential backoff via tenacity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from resource_aggregator.exceptions import ConfigurationError, ModelInvocationError
from resource_aggregator.models import Citation

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from resource_aggregator.config import LLMSettings
    from resource_aggregator.models import HistoryTurn

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_BACKOFF_MIN_SECONDS = 1.0
_BACKOFF_MAX_SECONDS = 8.0

_PROVIDER_PREFIX: dict[str, str] = {
    "google": "gemini",
    "openai": "openai",
    "anthropic": "anthropic",
}

# Client errors that will fail identically on every attempt.
_NON_TRANSIENT_STATUS = frozenset({400, 401, 403, 404, 422})

_GROUNDING_TOOL: dict[str, Any] = {"googleSearch": {}}


@dataclass(slots=True)
class GenerationResult:
    """Answer text plus citations from search grounding, if any."""

    text: str
    citations: list[Citation] = field(default_factory=list)


class TextGenerator(Protocol):
    """Anything that can answer a prompt; the pipeline depends only on this."""

    async def generate(
        self,
        prompt: str,
        *,
        history: Sequence[HistoryTurn] | None = None,
        grounding: bool = False,
    ) -> GenerationResult: ...


# ---------------------------------------------------------------------------
# Grounding metadata
# ---------------------------------------------------------------------------


def extract_citations(metadata: Any) -> list[Citation]:
    """Build citations from ``groundingChunks[].web.{title,uri}``.

    ``metadata`` may be a single grounding-metadata mapping or a list of
    them (one per candidate). Citation indices are 1-based positions in the
    chunk list; chunks without a ``web`` entry keep their slot but produce
    no citation.
    """
    if not metadata:
        return []
    blocks = metadata if isinstance(metadata, list) else [metadata]

    citations: list[Citation] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        chunks = block.get("groundingChunks") or block.get("grounding_chunks") or []
        for position, chunk in enumerate(chunks, start=1):
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if not isinstance(web, dict):
                continue
            citations.append(
                Citation(
                    title=str(web.get("title") or "Untitled"),
                    url=str(web.get("uri") or ""),
                    index=position,
                )
            )
    return citations


def _grounding_metadata(response: Any) -> Any:
    """Locate provider grounding metadata on a litellm response."""
    direct = getattr(response, "vertex_ai_grounding_metadata", None)
    if direct:
        return direct
    hidden = getattr(response, "_hidden_params", None) or {}
    if isinstance(hidden, dict):
        return hidden.get("vertex_ai_grounding_metadata")
    return None


def _response_text(response: Any) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError):
        return ""
    return content or ""


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ConfigurationError):
        return False
    status = getattr(exc, "status_code", None)
    return status not in _NON_TRANSIENT_STATUS


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LLMClient:
    """litellm-backed ``TextGenerator``.

    Attributes:
        settings: Provider, model, credentials, and retry configuration.
    """

    def __init__(
        self,
        settings: LLMSettings,
        completion: Callable[..., Awaitable[Any]] | None = None,
        backoff_min: float = _BACKOFF_MIN_SECONDS,
        backoff_max: float = _BACKOFF_MAX_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            settings: LLM configuration.
            completion: Async completion callable; defaults to
                ``litellm.acompletion``.
            backoff_min: Minimum wait between retry attempts in seconds.
            backoff_max: Maximum wait between retry attempts in seconds.
        """
        self.settings = settings
        self._completion = completion
        self._backoff_min = backoff_min
        self._backoff_max = backoff_max

    @property
    def model_id(self) -> str:
        """litellm provider-prefixed model identifier."""
        return f"{_PROVIDER_PREFIX[self.settings.provider]}/{self.settings.model}"

    def _require_api_key(self) -> str:
        api_key = self.settings.resolve_api_key()
        if not api_key:
            raise ConfigurationError(
                f"No API key configured for provider {self.settings.provider!r}"
            )
        return api_key

    def _build_messages(
        self, prompt: str, history: Sequence[HistoryTurn] | None
    ) -> list[dict[str, str]]:
        messages = [
            {
                "role": "assistant" if turn.role == "model" else "user",
                "content": turn.content,
            }
            for turn in history or []
        ]
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _complete(self, **kwargs: Any) -> Any:
        if self._completion is not None:
            return await self._completion(**kwargs)

        import litellm

        return await litellm.acompletion(**kwargs)

    async def generate(
        self,
        prompt: str,
        *,
        history: Sequence[HistoryTurn] | None = None,
        grounding: bool = False,
    ) -> GenerationResult:
        """Generate an answer for ``prompt``.

        Args:
            prompt: The user-facing prompt text.
            history: Prior conversation turns sent as context.
            grounding: Request provider search grounding (Gemini only).

        Returns:
            The answer text and any grounding citations.

        Raises:
            ConfigurationError: If no API key is available.
            ModelInvocationError: If every retry attempt fails.
        """
        api_key = self._require_api_key()

        call_kwargs: dict[str, Any] = {
            "model": self.model_id,
            "messages": self._build_messages(prompt, history),
            "api_key": api_key,
            "temperature": self.settings.temperature,
            "timeout": self.settings.timeout,
        }
        if grounding:
            if self.settings.provider == "google":
                call_kwargs["tools"] = [_GROUNDING_TOOL]
            else:
                logger.warning(
                    "grounding_unsupported",
                    provider=self.settings.provider,
                )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.retries),
            wait=wait_exponential(min=self._backoff_min, max=self._backoff_max),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._complete(**call_kwargs)
        except Exception as exc:
            logger.warning(
                "model_invoke_failed",
                model=self.model_id,
                grounding=grounding,
                error=str(exc),
            )
            raise ModelInvocationError(
                f"{self.model_id} failed after retries: {exc}"
            ) from exc

        citations = extract_citations(_grounding_metadata(response))
        logger.info(
            "model_invoke_success",
            model=self.model_id,
            grounding=grounding,
            citations=len(citations),
        )
        return GenerationResult(text=_response_text(response), citations=citations)
