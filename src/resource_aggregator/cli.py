"""Typer CLI entry point for the resource-aggregator."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from resource_aggregator import __version__
from resource_aggregator.api.auth import TokenService
from resource_aggregator.api.server import run_server
from resource_aggregator.cache import TTLCache
from resource_aggregator.classifier import ResourceClassifier
from resource_aggregator.config import Settings, format_validation_error
from resource_aggregator.exceptions import ConfigurationError, ResourceAggregatorError
from resource_aggregator.llm import LLMClient
from resource_aggregator.logging import configure_logging, generate_request_id
from resource_aggregator.orchestrator import ResourceAggregator
from resource_aggregator.scraping import ArticleMetadataFetcher, VideoSearchAdapter

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from resource_aggregator.models import ArticleResult, ResourceBundle, VideoResult

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="resource-aggregator",
    help="Find learning videos and articles for training-chat questions.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging."),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Print raw JSON instead of a table."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    verbose: bool = False,
    **overrides: Any,
) -> Settings:
    """Load settings and configure logging, with user-friendly errors."""
    from pydantic import ValidationError

    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    try:
        settings = Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc

    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        request_id=generate_request_id(),
    )
    return settings


@asynccontextmanager
async def _aggregator(settings: Settings) -> AsyncIterator[ResourceAggregator]:
    cache = TTLCache(
        ttl_seconds=settings.cache.ttl_seconds,
        max_entries=settings.cache.max_entries,
    )
    videos = VideoSearchAdapter(cache, settings=settings.videos)
    articles = ArticleMetadataFetcher(cache, settings=settings.articles)
    try:
        yield ResourceAggregator(
            LLMClient(settings.llm), videos, articles, cache, settings=settings
        )
    finally:
        await videos.aclose()
        await articles.aclose()


def _fail(exc: ResourceAggregatorError) -> typer.Exit:
    title = (
        "Configuration Error" if isinstance(exc, ConfigurationError) else "Error"
    )
    err_console.print(Panel(str(exc), title=title, border_style="red"))
    return typer.Exit(code=1)


def _print_videos(videos: Sequence[VideoResult]) -> None:
    table = Table(title=f"Videos ({len(videos)})", show_lines=True)
    table.add_column("Title", style="cyan")
    table.add_column("Link")
    table.add_column("Summary")
    for video in videos:
        table.add_row(video.title, video.link, video.summary)
    console.print(table)


def _print_articles(articles: Sequence[ArticleResult]) -> None:
    table = Table(title=f"Articles ({len(articles)})", show_lines=True)
    table.add_column("Title", style="cyan")
    table.add_column("Link")
    table.add_column("Summary")
    for article in articles:
        table.add_row(article.title, article.link, article.summary)
    console.print(table)


def _print_bundle(bundle: ResourceBundle) -> None:
    console.print(
        Panel(bundle.intro or "-", title=bundle.header or "Resources", border_style="blue")
    )
    _print_videos(bundle.youtube_videos)
    _print_articles(bundle.resources)


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]resource-aggregator[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Resource-aggregator global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[
        int,
        typer.Option("--port", help="Port to bind the FastAPI server."),
    ] = 8000,
    host: Annotated[
        str,
        typer.Option("--host", help="Host/interface to bind the FastAPI server."),
    ] = "0.0.0.0",
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Run the training API server."""
    settings = _load_settings(config, verbose, api={"port": port, "host": host})
    try:
        run_server(settings)
    except ResourceAggregatorError as exc:
        raise _fail(exc) from exc


@app.command()
def videos(
    query: Annotated[str, typer.Argument(help="Video search query.")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
) -> None:
    """Search videos for a single query (no AI call)."""
    settings = _load_settings(config, verbose)

    async def _run() -> list[VideoResult]:
        adapter = VideoSearchAdapter(
            TTLCache(ttl_seconds=settings.cache.ttl_seconds),
            settings=settings.videos,
        )
        try:
            return await adapter.search_videos(query)
        finally:
            await adapter.aclose()

    found = asyncio.run(_run())
    if as_json:
        console.print_json(
            data=[video.model_dump(by_alias=True) for video in found]
        )
        return
    _print_videos(found)


@app.command()
def article(
    url: Annotated[str, typer.Argument(help="Article URL to validate.")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Fetch one article's link-preview metadata and check it."""
    settings = _load_settings(config, verbose)

    async def _run() -> ArticleResult | None:
        fetcher = ArticleMetadataFetcher(
            TTLCache(ttl_seconds=settings.cache.ttl_seconds),
            settings=settings.articles,
        )
        try:
            return await fetcher.fetch_one(url)
        finally:
            await fetcher.aclose()

    result = asyncio.run(_run())
    if result is None:
        err_console.print(f"[red]Rejected:[/red] {url}")
        raise typer.Exit(code=1)
    table = Table(title="Article", show_lines=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Title", result.title)
    table.add_row("Link", result.link)
    table.add_row("Summary", result.summary)
    table.add_row("Image", result.image or "-")
    console.print(table)


@app.command()
def classify(
    message: Annotated[str, typer.Argument(help="Chat message to classify.")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Decide whether a message needs external resources."""
    settings = _load_settings(config, verbose)
    classifier = ResourceClassifier(LLMClient(settings.llm))
    needed = asyncio.run(classifier.needs_resources(message))
    label = "[green]true[/green]" if needed else "[yellow]false[/yellow]"
    console.print(f"needs resources: {label}")


@app.command()
def resources(
    message: Annotated[str, typer.Argument(help="Chat message to find resources for.")],
    kind: Annotated[
        str,
        typer.Option("--type", "-t", help="Resource type: youtube or articles."),
    ] = "youtube",
    config: ConfigOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
) -> None:
    """Fetch one resource type for a message."""
    if kind not in ("youtube", "articles"):
        err_console.print(f"[red]Unknown type {kind!r}; use youtube or articles.[/red]")
        raise typer.Exit(code=2)
    settings = _load_settings(config, verbose)

    async def _run() -> list[Any]:
        async with _aggregator(settings) as aggregator:
            if kind == "youtube":
                return await aggregator.fetch_resources(message, "youtube")
            return await aggregator.fetch_resources(message, "articles")

    try:
        found = asyncio.run(_run())
    except ResourceAggregatorError as exc:
        raise _fail(exc) from exc

    if as_json:
        console.print_json(data=[item.model_dump(by_alias=True) for item in found])
    elif kind == "youtube":
        _print_videos(found)
    else:
        _print_articles(found)


@app.command()
def bundle(
    message: Annotated[str, typer.Argument(help="Chat message to aggregate for.")],
    classify_first: Annotated[
        bool,
        typer.Option(
            "--classify/--no-classify",
            help="Skip aggregation when the message does not need resources.",
        ),
    ] = False,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
    as_json: JsonOption = False,
) -> None:
    """Build a combined video and article bundle for a message."""
    settings = _load_settings(config, verbose)

    async def _run() -> ResourceBundle | None:
        async with _aggregator(settings) as aggregator:
            if classify_first:
                outcome = await aggregator.classify_and_aggregate(message)
                return outcome.bundle
            return await aggregator.build_bundle(message)

    try:
        result = asyncio.run(_run())
    except ResourceAggregatorError as exc:
        raise _fail(exc) from exc

    if result is None:
        console.print("[yellow]No resources needed for this message.[/yellow]")
        return
    if as_json:
        console.print_json(result.model_dump_json(by_alias=True))
        return
    _print_bundle(result)


@app.command()
def token(
    user_id: Annotated[str, typer.Argument(help="User id to embed in the token.")],
    hours: Annotated[
        int | None,
        typer.Option("--hours", help="Token lifetime in hours."),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Mint a signed auth token for local development."""
    settings = _load_settings(config)
    try:
        secret = settings.api.require_jwt_secret()
    except ConfigurationError as exc:
        raise _fail(exc) from exc
    service = TokenService(
        secret,
        algorithm=settings.api.jwt_algorithm,
        expire_hours=settings.api.token_ttl_hours,
    )
    expires = timedelta(hours=hours) if hours else None
    typer.echo(service.create_token(user_id, expires_delta=expires))


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
