"""Video search by scraping the public YouTube results page.

The results page embeds its client-side hydration payload as
``var ytInitialData = {...};``. This adapter fetches the page, decodes that
blob, and walks the search sections for plain video entries. It is a best
effort scrape of an unstable page structure: every failure yields an empty
list, and empty results are never cached so the next call retries.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from resource_aggregator.cache import video_key
from resource_aggregator.config import VideoSearchSettings
from resource_aggregator.models import VideoResult

if TYPE_CHECKING:
    from resource_aggregator.cache import TTLCache

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

_INITIAL_DATA_MARKERS = (
    "var ytInitialData = ",
    'window["ytInitialData"] = ',
    "ytInitialData = ",
)
_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


# ---------------------------------------------------------------------------
# Page parsing
# ---------------------------------------------------------------------------


def extract_initial_data(page: str) -> dict[str, Any] | None:
    """Decode the ``ytInitialData`` JSON blob embedded in a results page.

    Returns:
        The decoded payload, or None if no marker is present or the JSON
        that follows it does not parse.
    """
    decoder = json.JSONDecoder()
    for marker in _INITIAL_DATA_MARKERS:
        start = page.find(marker)
        if start == -1:
            continue
        brace = page.find("{", start + len(marker))
        if brace == -1:
            continue
        try:
            payload, _ = decoder.raw_decode(page, brace)
        except json.JSONDecodeError:
            logger.info("video_initial_data_unparseable", marker=marker.strip())
            continue
        if isinstance(payload, dict):
            return payload
    return None


def _text(node: Any) -> str:
    """Flatten a ``{"runs": [{"text": ...}]}`` or ``{"simpleText": ...}`` node."""
    if not isinstance(node, dict):
        return ""
    if isinstance(node.get("simpleText"), str):
        return node["simpleText"].strip()
    runs = node.get("runs")
    if not isinstance(runs, list):
        return ""
    return "".join(
        str(run.get("text", "")) for run in runs if isinstance(run, dict)
    ).strip()


def _dig(node: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _section_items(payload: dict[str, Any]) -> list[list[Any]]:
    sections = _dig(
        payload,
        "contents",
        "twoColumnSearchResultsRenderer",
        "primaryContents",
        "sectionListRenderer",
        "contents",
    )
    if not isinstance(sections, list):
        return []
    items: list[list[Any]] = []
    for section in sections:
        contents = _dig(section, "itemSectionRenderer", "contents")
        if isinstance(contents, list):
            items.append(contents)
    return items


def parse_search_results(payload: dict[str, Any], limit: int = 5) -> list[VideoResult]:
    """Collect up to ``limit`` plain video entries from a results payload.

    Ads, shelves, channels, and playlists do not carry a ``videoRenderer``
    and are skipped, as are entries without an id or title.
    """
    videos: list[VideoResult] = []
    for contents in _section_items(payload):
        for item in contents:
            renderer = item.get("videoRenderer") if isinstance(item, dict) else None
            if not isinstance(renderer, dict):
                continue
            video_id = renderer.get("videoId")
            if not isinstance(video_id, str) or not _VIDEO_ID_RE.match(video_id):
                continue
            title = _text(renderer.get("title"))
            if not title:
                continue
            channel = _text(renderer.get("ownerText")) or _text(
                renderer.get("longBylineText")
            )
            description = _text(renderer.get("descriptionSnippet"))
            if not description:
                snippets = renderer.get("detailedMetadataSnippets")
                if isinstance(snippets, list) and snippets:
                    description = _text(_dig(snippets[0], "snippetText"))

            videos.append(
                VideoResult(
                    title=title,
                    link=WATCH_URL.format(video_id=video_id),
                    summary=description or f"Learn from {channel} - {title}",
                )
            )
            if len(videos) >= limit:
                return videos
    return videos


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class VideoSearchAdapter:
    """Search videos for a query, never raising.

    Concurrent searches for the same query share one in-flight scrape.

    Attributes:
        settings: Endpoint, timeout, redirect bound, and result cap.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: httpx.AsyncClient | None = None,
        settings: VideoSearchSettings | None = None,
    ) -> None:
        self.settings = settings or VideoSearchSettings()
        self._cache = cache
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout),
            follow_redirects=True,
            max_redirects=self.settings.max_redirects,
        )
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent)
        self._inflight: dict[str, asyncio.Future[list[VideoResult]]] = {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def search_videos(self, query: str) -> list[VideoResult]:
        """Return up to ``max_results`` videos for ``query``.

        Args:
            query: Free-text search query.

        Returns:
            Videos in page order; empty on any failure.
        """
        query = query.strip()
        if not query:
            return []

        cached = self._cache.get(video_key(query))
        if cached is not None:
            logger.debug("video_cache_hit", query=query)
            return list(cached)

        pending = self._inflight.get(query)
        if pending is None:
            pending = asyncio.ensure_future(self._scrape(query))
            self._inflight[query] = pending
            pending.add_done_callback(lambda _: self._inflight.pop(query, None))
        else:
            logger.debug("video_search_coalesced", query=query)

        return list(await asyncio.shield(pending))

    async def _scrape(self, query: str) -> list[VideoResult]:
        try:
            async with self._semaphore:
                response = await self._client.get(
                    self.settings.search_url,
                    params={"search_query": query},
                    headers=self._headers(),
                    timeout=self.settings.timeout,
                )
        except Exception as exc:
            logger.warning("video_search_failed", query=query, error=str(exc))
            return []

        if response.status_code != 200:
            logger.warning(
                "video_search_bad_status",
                query=query,
                status_code=response.status_code,
            )
            return []

        payload = extract_initial_data(response.text)
        if payload is None:
            logger.info("video_initial_data_missing", query=query)
            return []

        videos = parse_search_results(payload, limit=self.settings.max_results)
        if videos:
            self._cache.set(video_key(query), videos)
        logger.info("video_search_complete", query=query, results=len(videos))
        return videos
