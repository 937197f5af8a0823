"""Article metadata fetching with error-page detection.

Fetches a page, reads its link-preview metadata, and rejects pages whose
title or description look like an HTTP error page. Every fetch is best
effort: failures are logged and turned into ``None``, never raised, and
are never retried within a call.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

import httpx
import structlog

from resource_aggregator.cache import article_key
from resource_aggregator.config import ArticleSettings
from resource_aggregator.models import ArticleCandidate, ArticleResult
from resource_aggregator.scraping.preview import extract_preview

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from resource_aggregator.cache import TTLCache

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Error-page classification
# ---------------------------------------------------------------------------

_ERROR_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^Error \d{3}", re.IGNORECASE),
    re.compile(r"not found", re.IGNORECASE),
    re.compile(r"unsupported media type", re.IGNORECASE),
    re.compile(r"server error", re.IGNORECASE),
    re.compile(r"forbidden", re.IGNORECASE),
    re.compile(r"unauthorized", re.IGNORECASE),
    re.compile(r"bad gateway", re.IGNORECASE),
    re.compile(r"service unavailable", re.IGNORECASE),
    re.compile(r"gateway timeout", re.IGNORECASE),
]

_DEFAULT_TITLE = "Untitled"
_DEFAULT_SUMMARY = "Learn more about this article"


def is_error_page(title: str, summary: str) -> bool:
    """Return True if either field matches a known error-page pattern."""
    return any(
        pattern.search(title) or pattern.search(summary)
        for pattern in _ERROR_PATTERNS
    )


def filter_error_pages(
    candidates: Iterable[ArticleCandidate],
) -> list[ArticleCandidate]:
    """Keep candidates that carry a title and summary and are not error pages.

    Used on model-proposed articles whose metadata was never fetched.
    """
    return [
        candidate
        for candidate in candidates
        if candidate.title
        and candidate.summary
        and not is_error_page(candidate.title, candidate.summary)
    ]


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class ArticleMetadataFetcher:
    """Validate article URLs by fetching their link-preview metadata.

    Attributes:
        settings: Timeout, batch bounds, and concurrency limit.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: httpx.AsyncClient | None = None,
        settings: ArticleSettings | None = None,
    ) -> None:
        self.settings = settings or ArticleSettings()
        self._cache = cache
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout),
            follow_redirects=True,
        )
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_page(self, url: str) -> httpx.Response:
        async with self._semaphore:
            response = await self._client.get(
                url,
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
                },
                timeout=self.settings.timeout,
                follow_redirects=True,
            )
        response.raise_for_status()
        return response

    async def fetch_one(self, url: str) -> ArticleResult | None:
        """Fetch and validate one article.

        Args:
            url: The article URL.

        Returns:
            An ``ArticleResult``, or None if the fetch failed, the page is
            not HTML, or the page looks like an error page.
        """
        if not url or not url.startswith(("http://", "https://")):
            logger.debug("article_url_rejected", url=url)
            return None

        key = article_key(url)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("article_cache_hit", url=url)
            return cached  # type: ignore[no-any-return]

        try:
            response = await self._fetch_page(url)
        except Exception as exc:
            logger.info("article_fetch_failed", url=url, error=str(exc))
            return None

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type.lower():
            logger.info("article_not_html", url=url, content_type=content_type)
            return None

        preview = extract_preview(response.text, str(response.url))
        title = preview.title or _DEFAULT_TITLE
        summary = preview.description or _DEFAULT_SUMMARY

        if is_error_page(title, summary):
            logger.info("article_error_page_skipped", url=url, title=title)
            return None

        result = ArticleResult(
            title=title,
            link=url,
            summary=summary,
            image=preview.images[0] if preview.images else None,
        )
        self._cache.set(key, result)
        logger.debug("article_fetch_ok", url=url, title=title)
        return result

    async def fetch_many(self, urls: Sequence[str]) -> list[ArticleResult]:
        """Validate a batch of URLs concurrently.

        Only the first ``max_candidates`` URLs are fetched. Failures are
        skipped silently and at most ``max_results`` successes are
        returned, in input order, without repeated links.

        Args:
            urls: Candidate article URLs.

        Returns:
            Validated articles.
        """
        batch = list(urls[: self.settings.max_candidates])
        if not batch:
            return []

        outcomes = await asyncio.gather(
            *(self.fetch_one(url) for url in batch),
            return_exceptions=True,
        )

        results: list[ArticleResult] = []
        seen_links: set[str] = set()
        for outcome in outcomes:
            if not isinstance(outcome, ArticleResult) or outcome.link in seen_links:
                continue
            seen_links.add(outcome.link)
            results.append(outcome)
            if len(results) >= self.settings.max_results:
                break

        logger.info(
            "article_batch_validated",
            requested=len(urls),
            fetched=len(batch),
            validated=len(results),
        )
        return results
