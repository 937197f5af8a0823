"""API request/response models for the training endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from resource_aggregator.models import (
    ArticleResult,
    ChatSummary,
    HistoryTurn,
    ResourceKind,
    VideoResult,
)


class _APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_APIModel):
    """Payload for one chat message."""

    message: str = Field(min_length=1)
    history: list[HistoryTurn] = Field(default_factory=list)
    chat_id: str | None = None


class ResourcesRequest(_APIModel):
    """Payload for fetching a single resource type."""

    message: str = Field(min_length=1)
    type: ResourceKind


class AggregateRequest(_APIModel):
    """Payload for the classify-then-aggregate endpoint."""

    message: str = Field(min_length=1)
    history: list[HistoryTurn] = Field(default_factory=list)


class ResourcesResponse(_APIModel):
    """One resource type; the other field is omitted from the response."""

    youtube_videos: list[VideoResult] | None = None
    resources: list[ArticleResult] | None = None


class ChatListResponse(BaseModel):
    """Chat listing response."""

    chats: list[ChatSummary]
