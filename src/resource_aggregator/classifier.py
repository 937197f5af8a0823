"""Decide whether a chat message warrants fetching external resources."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Sequence

    from resource_aggregator.llm import TextGenerator
    from resource_aggregator.models import HistoryTurn

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_HISTORY_WINDOW = 5

_ACKNOWLEDGEMENT_RE = re.compile(
    r"^(yes|no|ok|okay|thanks|thank you|got it|understood|alright|sure|fine)$",
    re.IGNORECASE,
)

_CLASSIFY_PROMPT = """\
{context}User question: "{message}"

Analyze if this question requires external resources (YouTube videos, articles, blogs) to answer properly.

Return ONLY "true" or "false" - no other text.

Return "true" if the user is asking to:
- Learn something new
- Get tutorials, guides, or courses
- Find resources, articles, or videos
- Get recommendations or suggestions
- Understand a concept that needs examples

Return "false" if the user is:
- Asking a simple follow-up question (yes, no, thanks, ok, etc.)
- Asking for clarification on a previous answer
- Having a casual conversation
- Asking a quick question that doesn't need external resources"""


def build_classifier_prompt(message: str, history: Sequence[HistoryTurn]) -> str:
    """Render the classification prompt with the last few history turns."""
    context = ""
    if history:
        recent = "\n".join(
            f"{turn.role}: {turn.content}" for turn in history[-_HISTORY_WINDOW:]
        )
        context = f"Previous conversation:\n{recent}\n\n"
    return _CLASSIFY_PROMPT.format(context=context, message=message)


def is_acknowledgement(message: str) -> bool:
    """True for short replies such as "thanks" or "got it"."""
    return bool(_ACKNOWLEDGEMENT_RE.match(message.strip().lower()))


class ResourceClassifier:
    """Ask the model whether a message needs resources, with a local fallback.

    When the model is unreachable the heuristic answers: acknowledgements
    need nothing, everything else gets resources.
    """

    def __init__(self, llm: TextGenerator) -> None:
        self._llm = llm

    async def needs_resources(
        self, message: str, history: Sequence[HistoryTurn] = ()
    ) -> bool:
        prompt = build_classifier_prompt(message, history)
        try:
            result = await self._llm.generate(prompt)
        except Exception as exc:
            fallback = not is_acknowledgement(message)
            logger.warning(
                "classifier_fallback",
                error=str(exc),
                needs_resources=fallback,
            )
            return fallback

        decision = result.text.strip().lower() == "true"
        logger.info("classifier_decision", needs_resources=decision)
        return decision
