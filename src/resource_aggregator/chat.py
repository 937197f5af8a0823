"""Training chat replies with search grounding and optional persistence.

A reply is one grounded model answer plus a relevance decision. The answer
is decoded as a structured ``{header, intro, ...}`` object when the model
returns one, otherwise the plain text becomes the intro of a default
bundle. Videos and articles are never taken from the answer itself: when
``needs_resources`` is true the caller fetches them through the
``ResourceAggregator`` and attaches them afterwards.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from resource_aggregator.decoding import decode_json_object
from resource_aggregator.models import ChatMessage, ChatReply, ResourceBundle
from resource_aggregator.orchestrator import DEFAULT_HEADER
from resource_aggregator.transcript import title_from_message

if TYPE_CHECKING:
    from collections.abc import Sequence

    from resource_aggregator.classifier import ResourceClassifier
    from resource_aggregator.llm import TextGenerator
    from resource_aggregator.models import HistoryTurn
    from resource_aggregator.transcript import ChatStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

EMPTY_REPLY = "I apologize, but I could not generate a response."

_CHAT_PROMPT = """\
{message}

Answer as a friendly trainer. Use Google Search to ground your answer in
real, currently available sources and do not invent URLs.

Format your response as a single JSON object and return only that object:

{{
  "header": "Main heading for the response",
  "intro": "Brief introductory text (2-3 sentences)"
}}"""


def structured_reply(text: str) -> ResourceBundle:
    """Turn the model's answer into a bundle header and intro.

    Falls back to ``DEFAULT_HEADER`` with the whole answer as the intro
    when no JSON object can be decoded.
    """
    decoded = decode_json_object(text)
    if decoded.ok:
        header = decoded.value.get("header")
        intro = decoded.value.get("intro")
        if isinstance(header, str) and header.strip():
            return ResourceBundle(
                header=header.strip(),
                intro=intro.strip() if isinstance(intro, str) else "",
            )
    return ResourceBundle(header=DEFAULT_HEADER, intro=text)


class TrainingChatService:
    """Answers chat messages and records them in the transcript store."""

    def __init__(
        self,
        llm: TextGenerator,
        classifier: ResourceClassifier,
        store: ChatStore | None = None,
    ) -> None:
        self._llm = llm
        self._classifier = classifier
        self._store = store

    async def reply(
        self,
        message: str,
        history: Sequence[HistoryTurn] = (),
        *,
        user_id: str | None = None,
        chat_id: str | None = None,
    ) -> ChatReply:
        """Answer ``message`` in the context of ``history``.

        The grounded answer and the relevance decision are requested
        concurrently. When a ``user_id`` is given and a store is configured,
        the user message and the reply are appended to ``chat_id``, or to a
        new chat titled from the message when ``chat_id`` is None.

        Args:
            message: The user's message.
            history: Prior turns of the conversation.
            user_id: Owner of the transcript; None skips persistence.
            chat_id: Existing chat to continue.

        Returns:
            The reply text, structured data, citations, relevance decision,
            and the chat id the exchange was stored under.

        Raises:
            ConfigurationError: If the AI backend has no credential.
            ModelInvocationError: If the answer could not be generated.
            ChatNotFoundError: If ``chat_id`` does not belong to the user.
        """
        store = self._store if user_id is not None else None
        if store is not None and user_id is not None and chat_id is not None:
            store.get_chat(chat_id, user_id)

        generation, needs_resources = await asyncio.gather(
            self._llm.generate(
                _CHAT_PROMPT.format(message=message),
                history=history,
                grounding=True,
            ),
            self._classifier.needs_resources(message, history),
        )
        text = generation.text.strip() or EMPTY_REPLY
        reply = ChatReply(
            message=text,
            structured_data=structured_reply(text),
            citations=generation.citations,
            needs_resources=needs_resources,
        )

        if store is not None and user_id is not None:
            reply.chat_id = self._persist(store, user_id, chat_id, message, reply)

        logger.info(
            "chat_reply",
            chat_id=reply.chat_id,
            needs_resources=needs_resources,
            citations=len(reply.citations),
        )
        return reply

    @staticmethod
    def _persist(
        store: ChatStore,
        user_id: str,
        chat_id: str | None,
        message: str,
        reply: ChatReply,
    ) -> str:
        if chat_id is None:
            chat_id = store.create_chat(user_id, title_from_message(message)).id
        store.append_messages(
            chat_id,
            user_id,
            [
                ChatMessage(role="user", content=message),
                ChatMessage(
                    role="model",
                    content=reply.message,
                    citations=reply.citations,
                    structured_data=reply.structured_data,
                ),
            ],
        )
        return chat_id
