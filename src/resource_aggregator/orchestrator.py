"""Resource aggregation: videos and articles for one chat message.

The orchestrator runs two independent paths and merges them into a
``ResourceBundle``:

- **Video path**: the model proposes a few short search queries; the first
  two are searched in parallel and the results flattened in query order.
- **Article path**: one search-grounded model call proposes candidate
  articles; the ordered tiers in ``resource_aggregator.tiers`` turn that
  proposal into validated results.

Either path can be requested on its own for progressive UI updates, and a
failure in one never blocks or empties the other. A missing AI credential
is the one error that is not absorbed: it surfaces as
``ConfigurationError`` because retrying cannot fix it.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from resource_aggregator.cache import resources_key
from resource_aggregator.classifier import ResourceClassifier
from resource_aggregator.config import Settings
from resource_aggregator.decoding import decode_json_array, decode_string_list
from resource_aggregator.exceptions import ConfigurationError
from resource_aggregator.logging import stage_logging_context
from resource_aggregator.models import (
    AggregationOutcome,
    ArticleCandidate,
    ArticleResult,
    ResourceBundle,
    ResourceKind,
    VideoResult,
)
from resource_aggregator.tiers import ArticleProposal, default_tiers, run_tiers

if TYPE_CHECKING:
    from collections.abc import Sequence

    from resource_aggregator.cache import TTLCache
    from resource_aggregator.llm import TextGenerator
    from resource_aggregator.models import HistoryTurn
    from resource_aggregator.scraping.articles import ArticleMetadataFetcher
    from resource_aggregator.scraping.video import VideoSearchAdapter
    from resource_aggregator.tiers import ArticleTier

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_HEADER = "Recommended Resources"

_VIDEO_QUERY_PROMPT = """\
Generate 2-3 YouTube search queries for: "{message}"

Return ONLY a JSON array of search queries: ["query 1", "query 2", "query 3"]
Return ONLY valid JSON, no other text."""

_ARTICLE_PROMPT = """\
Find 5-7 high-quality articles or blogs about: "{message}"

Using your Google Search grounding, return ONLY a JSON array in this format:

[
  {{
    "title": "Article title",
    "link": "Full URL",
    "summary": "Brief 2-3 sentence summary"
  }}
]

Return ONLY valid JSON, no additional text."""


def default_intro(message: str) -> str:
    return f'Videos and articles to help you learn about "{message}".'


def parse_article_candidates(text: str | None) -> list[ArticleCandidate]:
    """Decode the model's article array; unparseable text yields no candidates."""
    decoded = decode_json_array(text, item=lambda item: isinstance(item, dict))
    if not decoded.ok:
        logger.info("article_candidates_unparseable", error=decoded.error)
        return []
    return [
        ArticleCandidate.model_validate(item)
        for item in decoded.value
        if isinstance(item, dict)
    ]


class ResourceAggregator:
    """Coordinates the classifier, video search, and article tiers.

    Attributes:
        settings: Result caps and per-path limits.
    """

    def __init__(
        self,
        llm: TextGenerator,
        videos: VideoSearchAdapter,
        articles: ArticleMetadataFetcher,
        cache: TTLCache,
        classifier: ResourceClassifier | None = None,
        tiers: Sequence[ArticleTier] | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            llm: AI backend used for query generation and article proposals.
            videos: Video search adapter.
            articles: Article metadata fetcher.
            cache: Cache for per-type results keyed by message.
            classifier: Relevance classifier; built from ``llm`` if omitted.
            tiers: Article fallback order; ``default_tiers`` if omitted.
            settings: Application settings; defaults if omitted.
        """
        self.settings = settings or Settings()
        self._llm = llm
        self._videos = videos
        self._articles = articles
        self._cache = cache
        self._classifier = classifier or ResourceClassifier(llm)
        self._max_videos = self.settings.videos.max_results
        self._max_articles = self.settings.articles.max_results
        self._tiers = list(tiers) if tiers is not None else default_tiers(
            articles, self._max_articles
        )

    # -- video path ---------------------------------------------------------

    async def _video_queries(self, message: str) -> list[str]:
        result = await self._llm.generate(_VIDEO_QUERY_PROMPT.format(message=message))
        queries = decode_string_list(result.text)
        if not queries:
            logger.info("video_queries_unparseable", preview=result.text[:120])
        return queries

    async def fetch_videos(self, message: str) -> list[VideoResult]:
        """Search videos for ``message`` via model-generated queries.

        Returns:
            At most ``max_results`` videos, in query order.

        Raises:
            ConfigurationError: If the AI backend has no credential.
        """
        key = resources_key("youtube", message)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        with stage_logging_context("videos") as log:
            try:
                queries = await self._video_queries(message)
            except ConfigurationError:
                raise
            except Exception as exc:
                log.warning("video_queries_failed", error=str(exc))
                queries = []

            selected = queries[: self.settings.videos.max_queries]
            batches = await asyncio.gather(
                *(self._videos.search_videos(query) for query in selected)
            )
            videos = [video for batch in batches for video in batch][
                : self._max_videos
            ]
            log.info("videos_collected", queries=selected, results=len(videos))

        if videos:
            self._cache.set(key, videos)
        return videos

    # -- article path -------------------------------------------------------

    async def propose_articles(self, message: str) -> ArticleProposal:
        """Ask the grounded model for candidate articles and citations."""
        result = await self._llm.generate(
            _ARTICLE_PROMPT.format(message=message), grounding=True
        )
        return ArticleProposal(
            candidates=parse_article_candidates(result.text),
            citations=list(result.citations),
        )

    async def fetch_articles(self, message: str) -> list[ArticleResult]:
        """Find validated articles for ``message`` through the fallback tiers.

        Returns:
            At most ``max_results`` articles.

        Raises:
            ConfigurationError: If the AI backend has no credential.
        """
        key = resources_key("articles", message)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        with stage_logging_context("articles") as log:
            try:
                proposal = await self.propose_articles(message)
            except ConfigurationError:
                raise
            except Exception as exc:
                log.warning("article_proposal_failed", error=str(exc))
                proposal = ArticleProposal()

            log.info(
                "article_proposal",
                candidates=len(proposal.candidates),
                citations=len(proposal.citations),
            )
            tier, articles = await run_tiers(
                self._tiers, proposal, max_results=self._max_articles
            )
            log.info("articles_collected", tier=tier, results=len(articles))

        if articles:
            self._cache.set(key, articles)
        return articles

    # -- entry points -------------------------------------------------------

    async def fetch_resources(
        self, message: str, kind: ResourceKind
    ) -> list[VideoResult] | list[ArticleResult]:
        """Fetch a single resource type, for progressive rendering."""
        if kind == "youtube":
            return await self.fetch_videos(message)
        return await self.fetch_articles(message)

    async def _guarded(self, coro_name: str, message: str) -> list:
        fetch = self.fetch_videos if coro_name == "videos" else self.fetch_articles
        try:
            return await fetch(message)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.warning("resource_path_failed", path=coro_name, error=str(exc))
            return []

    async def build_bundle(
        self,
        message: str,
        header: str | None = None,
        intro: str | None = None,
    ) -> ResourceBundle:
        """Gather both resource types concurrently into one bundle.

        An empty bundle is a valid outcome and means nothing was found.
        """
        videos, articles = await asyncio.gather(
            self._guarded("videos", message),
            self._guarded("articles", message),
        )
        return ResourceBundle(
            header=header or DEFAULT_HEADER,
            intro=intro or default_intro(message),
            youtube_videos=videos,
            resources=articles,
        )

    async def classify_and_aggregate(
        self,
        message: str,
        history: Sequence[HistoryTurn] = (),
    ) -> AggregationOutcome:
        """Classify ``message`` and, when relevant, build its bundle.

        Args:
            message: The user's chat message.
            history: Prior conversation turns.

        Returns:
            Whether resources were needed and, if so, the bundle.
        """
        needed = await self._classifier.needs_resources(message, history)
        if not needed:
            return AggregationOutcome(needs_resources=False)
        bundle = await self.build_bundle(message)
        return AggregationOutcome(needs_resources=True, bundle=bundle)
