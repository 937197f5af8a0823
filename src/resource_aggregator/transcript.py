"""Persistence for training chats and their messages."""

from __future__ import annotations

import json
import re
import threading
import uuid
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from resource_aggregator.exceptions import ChatNotFoundError
from resource_aggregator.models import (
    MAX_TITLE_LENGTH,
    Chat,
    ChatMessage,
    ChatSummary,
    ResourceBundle,
    utc_now_iso,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_TITLE = "New Chat"

_WHITESPACE_RE = re.compile(r"\s+")


def title_from_message(message: str) -> str:
    """Derive a chat title from its first message.

    Whitespace is collapsed and the result cut to ``MAX_TITLE_LENGTH``
    characters.
    """
    collapsed = _WHITESPACE_RE.sub(" ", message).strip()
    if not collapsed:
        return DEFAULT_TITLE
    return collapsed[:MAX_TITLE_LENGTH].rstrip()


class ChatStorePayload(BaseModel):
    """On-disk layout of the chat store file."""

    chats: list[Chat] = Field(default_factory=list)


class ChatStore:
    """JSON-backed chat transcripts, scoped per user.

    A chat owned by another user is indistinguishable from a missing one:
    both raise ``ChatNotFoundError``.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> ChatStorePayload:
        if not self._path.exists():
            return ChatStorePayload()
        payload = json.loads(self._path.read_text(encoding="utf-8"))
        return ChatStorePayload.model_validate(payload)

    def _save(self, payload: ChatStorePayload) -> None:
        self._path.write_text(
            payload.model_dump_json(indent=2, by_alias=True),
            encoding="utf-8",
        )

    @staticmethod
    def _find(payload: ChatStorePayload, chat_id: str, user_id: str) -> Chat:
        for chat in payload.chats:
            if chat.id == chat_id and chat.user_id == user_id:
                return chat
        raise ChatNotFoundError(f"Chat {chat_id!r} not found")

    def create_chat(self, user_id: str, title: str) -> Chat:
        chat = Chat(id=uuid.uuid4().hex, user_id=user_id, title=title)
        with self._lock:
            payload = self._load()
            payload.chats.append(chat)
            self._save(payload)
        logger.info("chat_created", chat_id=chat.id, user_id=user_id)
        return chat

    def list_chats(self, user_id: str) -> list[ChatSummary]:
        """Summaries of the user's chats, most recently updated first."""
        with self._lock:
            payload = self._load()
        owned = [chat for chat in payload.chats if chat.user_id == user_id]
        owned.sort(key=lambda chat: chat.updated_at, reverse=True)
        return [
            ChatSummary(
                id=chat.id,
                title=chat.title,
                created_at=chat.created_at,
                updated_at=chat.updated_at,
            )
            for chat in owned
        ]

    def get_chat(self, chat_id: str, user_id: str) -> Chat:
        with self._lock:
            payload = self._load()
        return self._find(payload, chat_id, user_id)

    def append_messages(
        self,
        chat_id: str,
        user_id: str,
        messages: Iterable[ChatMessage],
    ) -> Chat:
        """Append messages to a chat and bump its ``updated_at``."""
        with self._lock:
            payload = self._load()
            chat = self._find(payload, chat_id, user_id)
            added = list(messages)
            chat.messages.extend(added)
            chat.updated_at = utc_now_iso()
            self._save(payload)
        logger.debug("chat_messages_appended", chat_id=chat_id, count=len(added))
        return chat

    def attach_bundle(
        self,
        chat_id: str,
        user_id: str,
        bundle: ResourceBundle,
    ) -> Chat:
        """Set ``bundle`` as the structured data of the latest model message.

        Raises:
            ChatNotFoundError: If the chat is missing or has no model reply.
        """
        with self._lock:
            payload = self._load()
            chat = self._find(payload, chat_id, user_id)
            target = next(
                (msg for msg in reversed(chat.messages) if msg.role == "model"),
                None,
            )
            if target is None:
                raise ChatNotFoundError(f"Chat {chat_id!r} has no model reply")
            target.structured_data = bundle
            chat.updated_at = utc_now_iso()
            self._save(payload)
        logger.info(
            "chat_bundle_attached",
            chat_id=chat_id,
            videos=len(bundle.youtube_videos),
            articles=len(bundle.resources),
        )
        return chat

    def delete_chat(self, chat_id: str, user_id: str) -> None:
        with self._lock:
            payload = self._load()
            chat = self._find(payload, chat_id, user_id)
            payload.chats.remove(chat)
            self._save(payload)
        logger.info("chat_deleted", chat_id=chat_id, user_id=user_id)
