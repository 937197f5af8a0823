"""FastAPI application for training chat and resource aggregation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi import Cookie, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from resource_aggregator import __version__
from resource_aggregator.api.auth import TokenPayload, TokenService, require_user
from resource_aggregator.api.models import (
    AggregateRequest,
    ChatListResponse,
    ChatRequest,
    ResourcesRequest,
    ResourcesResponse,
)
from resource_aggregator.cache import TTLCache
from resource_aggregator.chat import TrainingChatService
from resource_aggregator.classifier import ResourceClassifier
from resource_aggregator.config import Settings
from resource_aggregator.exceptions import (
    AuthenticationError,
    ChatNotFoundError,
    ConfigurationError,
    ModelInvocationError,
)
from resource_aggregator.llm import LLMClient
from resource_aggregator.logging import generate_request_id
from resource_aggregator.models import (
    AggregationOutcome,
    Chat,
    ChatReply,
    ResourceBundle,
)
from resource_aggregator.orchestrator import ResourceAggregator
from resource_aggregator.scraping import ArticleMetadataFetcher, VideoSearchAdapter
from resource_aggregator.transcript import ChatStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import Response

    from resource_aggregator.llm import TextGenerator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    llm: TextGenerator | None = None,
    aggregator: ResourceAggregator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI server app.

    Args:
        settings: Application settings; loaded from the environment if
            omitted.
        llm: AI backend; a litellm-backed client if omitted.
        aggregator: Resource aggregator; built from ``settings`` if omitted.

    Raises:
        ConfigurationError: If no token signing secret is configured.
    """
    app_settings = settings or Settings.load()
    jwt_secret = app_settings.api.require_jwt_secret()

    app = FastAPI(title="resource-aggregator API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    generator = llm or LLMClient(app_settings.llm)
    classifier = ResourceClassifier(generator)
    cache = TTLCache(
        ttl_seconds=app_settings.cache.ttl_seconds,
        max_entries=app_settings.cache.max_entries,
    )
    videos = VideoSearchAdapter(cache, settings=app_settings.videos)
    articles = ArticleMetadataFetcher(cache, settings=app_settings.articles)
    resource_aggregator = aggregator or ResourceAggregator(
        generator,
        videos,
        articles,
        cache,
        classifier=classifier,
        settings=app_settings,
    )
    store = ChatStore(app_settings.storage.chat_store_path)
    chat_service = TrainingChatService(generator, classifier, store)
    tokens = TokenService(
        jwt_secret,
        algorithm=app_settings.api.jwt_algorithm,
        expire_hours=app_settings.api.token_ttl_hours,
    )

    app.state.settings = app_settings
    app.state.cache = cache
    app.state.aggregator = resource_aggregator
    app.state.chat_store = store
    app.state.chat_service = chat_service
    app.state.token_service = tokens

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await videos.aclose()
        await articles.aclose()

    @app.middleware("http")
    async def bind_request_id(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # -- error mapping ------------------------------------------------------

    @app.exception_handler(AuthenticationError)
    async def on_auth_error(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(ChatNotFoundError)
    async def on_chat_not_found(
        request: Request, exc: ChatNotFoundError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Chat not found"})

    @app.exception_handler(ConfigurationError)
    async def on_configuration_error(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("configuration_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": "configuration_error", "message": str(exc)},
        )

    @app.exception_handler(ModelInvocationError)
    async def on_model_error(
        request: Request, exc: ModelInvocationError
    ) -> JSONResponse:
        logger.error("model_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=502,
            content={"error": "model_unavailable", "message": str(exc)},
        )

    # -- auth ---------------------------------------------------------------

    cookie_name = app_settings.api.cookie_name

    async def current_user(
        auth_token: str | None = Cookie(default=None, alias=cookie_name),
    ) -> TokenPayload:
        return require_user(auth_token, tokens)

    async def optional_user(
        auth_token: str | None = Cookie(default=None, alias=cookie_name),
    ) -> TokenPayload | None:
        if auth_token is None:
            return None
        return tokens.verify_token(auth_token)

    user_dep = Depends(current_user)
    optional_user_dep = Depends(optional_user)

    # -- routes -------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/training/chat", response_model=ChatReply)
    async def chat(
        payload: ChatRequest,
        user: TokenPayload | None = optional_user_dep,
    ) -> ChatReply:
        return await chat_service.reply(
            payload.message,
            payload.history,
            user_id=user.user_id if user else None,
            chat_id=payload.chat_id,
        )

    @app.post(
        "/api/training/chat/resources",
        response_model=ResourcesResponse,
        response_model_exclude_none=True,
    )
    async def chat_resources(
        payload: ResourcesRequest,
        user: TokenPayload = user_dep,
    ) -> ResourcesResponse:
        if payload.type == "youtube":
            videos_found = await resource_aggregator.fetch_videos(payload.message)
            return ResourcesResponse(youtube_videos=videos_found)
        articles_found = await resource_aggregator.fetch_articles(payload.message)
        return ResourcesResponse(resources=articles_found)

    @app.post("/api/training/aggregate", response_model=AggregationOutcome)
    async def aggregate(
        payload: AggregateRequest,
        user: TokenPayload = user_dep,
    ) -> AggregationOutcome:
        return await resource_aggregator.classify_and_aggregate(
            payload.message, payload.history
        )

    @app.get("/api/training/chats", response_model=ChatListResponse)
    async def list_chats(user: TokenPayload = user_dep) -> ChatListResponse:
        return ChatListResponse(chats=store.list_chats(user.user_id))

    @app.get("/api/training/chats/{chat_id}", response_model=Chat)
    async def get_chat(chat_id: str, user: TokenPayload = user_dep) -> Chat:
        return store.get_chat(chat_id, user.user_id)

    @app.delete("/api/training/chats/{chat_id}")
    async def delete_chat(chat_id: str, user: TokenPayload = user_dep) -> dict[str, str]:
        store.delete_chat(chat_id, user.user_id)
        return {"status": "deleted"}

    @app.post("/api/training/chats/{chat_id}/bundle", response_model=Chat)
    async def attach_bundle(
        chat_id: str,
        bundle: ResourceBundle,
        user: TokenPayload = user_dep,
    ) -> Chat:
        return store.attach_bundle(chat_id, user.user_id, bundle)

    return app
