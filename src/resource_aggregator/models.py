"""Domain models for resource bundles and chat transcripts.

Persisted and API-facing models serialize with camelCase aliases
(``youtubeVideos``, ``structuredData``, ``userId``) so stored transcripts
keep the shape the chat client reads. Construction accepts either the
field name or the alias.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_BUNDLE_ITEMS = 5
MAX_TITLE_LENGTH = 200

Role = Literal["user", "model"]
ResourceKind = Literal["youtube", "articles"]


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class VideoResult(_CamelModel):
    """A video found by the video search adapter."""

    title: str
    link: str = Field(description="Canonical watch URL.")
    summary: str


class ArticleResult(_CamelModel):
    """An article or blog post with validated link-preview metadata."""

    type: Literal["article", "blog"] = "article"
    title: str
    link: str
    summary: str
    image: str | None = None


class ArticleCandidate(_CamelModel):
    """An article proposed by the model. Nothing about it is verified."""

    title: str = ""
    link: str = ""
    summary: str = ""

    @field_validator("title", "link", "summary", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value).strip()


class Citation(_CamelModel):
    """A search-grounding citation returned alongside a model answer."""

    title: str
    url: str
    index: int = Field(ge=1, description="1-based position among grounding chunks.")


class ResourceBundle(_CamelModel):
    """Combined video and article results for one user query."""

    header: str = ""
    intro: str = ""
    youtube_videos: list[VideoResult] = Field(
        default_factory=list, max_length=MAX_BUNDLE_ITEMS
    )
    resources: list[ArticleResult] = Field(
        default_factory=list, max_length=MAX_BUNDLE_ITEMS
    )


class AggregationOutcome(_CamelModel):
    """Result of the classify-then-aggregate entry point."""

    needs_resources: bool
    bundle: ResourceBundle | None = None


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class HistoryTurn(_CamelModel):
    """One prior conversation turn passed as context."""

    role: Role
    content: str


class ChatMessage(_CamelModel):
    """A persisted chat message. Append-only once stored."""

    role: Role
    content: str = Field(min_length=1)
    citations: list[Citation] = Field(default_factory=list)
    structured_data: ResourceBundle | None = None


class Chat(_CamelModel):
    """A user's training conversation."""

    id: str
    user_id: str
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ChatSummary(_CamelModel):
    """Listing view of a chat, without its messages."""

    id: str
    title: str
    created_at: str
    updated_at: str


class ChatReply(_CamelModel):
    """Response to one chat message."""

    message: str
    structured_data: ResourceBundle
    citations: list[Citation] = Field(default_factory=list)
    needs_resources: bool = False
    chat_id: str | None = None
