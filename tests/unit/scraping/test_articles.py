"""Unit tests for article metadata fetching and error-page filtering."""

from __future__ import annotations

import httpx
import pytest
import respx

from resource_aggregator.cache import TTLCache, article_key
from resource_aggregator.config import ArticleSettings
from resource_aggregator.models import ArticleCandidate
from resource_aggregator.scraping.articles import (
    ArticleMetadataFetcher,
    filter_error_pages,
    is_error_page,
)


def _html(title: str, description: str = "A useful read.") -> str:
    return (
        "<html><head>"
        f'<meta property="og:title" content="{title}">'
        f'<meta property="og:description" content="{description}">'
        '<meta property="og:image" content="/cover.png">'
        "</head><body><p>Body</p></body></html>"
    )


def _ok(title: str, description: str = "A useful read.") -> httpx.Response:
    return httpx.Response(
        200,
        text=_html(title, description),
        headers={"content-type": "text/html; charset=utf-8"},
    )


# ---------------------------------------------------------------------------
# Error-page classification
# ---------------------------------------------------------------------------


class TestIsErrorPage:
    """Known error phrases in either field reject the page."""

    @pytest.mark.parametrize(
        ("title", "summary"),
        [
            ("Error 404", "whatever"),
            ("Page Not Found", "x"),
            ("Docs", "503 Service Unavailable"),
            ("403 Forbidden", "x"),
            ("Oops", "Internal Server Error"),
            ("Gateway Timeout", "x"),
            ("Unsupported Media Type", "x"),
        ],
    )
    def test_error_pages(self, title: str, summary: str) -> None:
        assert is_error_page(title, summary)

    def test_regular_page(self) -> None:
        assert not is_error_page("Async Python Guide", "Learn asyncio step by step.")

    def test_error_prefix_must_lead_title(self) -> None:
        assert not is_error_page("Handling Error 500s gracefully", "Retry tips.")


class TestFilterErrorPages:
    """Filtering keeps complete, non-error candidates."""

    def test_filters_incomplete_and_error_candidates(self) -> None:
        candidates = [
            ArticleCandidate(title="Good", link="https://a.io", summary="Solid."),
            ArticleCandidate(title="", link="https://b.io", summary="No title"),
            ArticleCandidate(title="No summary", link="https://c.io", summary=None),
            ArticleCandidate(title="404 Not Found", link="https://d.io", summary="x"),
        ]
        kept = filter_error_pages(candidates)
        assert [c.link for c in kept] == ["https://a.io"]

    def test_empty_input(self) -> None:
        assert filter_error_pages([]) == []


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class TestFetchOne:
    """fetch_one returns validated metadata or None, never raising."""

    @pytest.mark.asyncio()
    @respx.mock
    async def test_valid_page(self, cache: TTLCache) -> None:
        respx.get("https://blog.example/post").mock(return_value=_ok("Great Post"))
        fetcher = ArticleMetadataFetcher(cache)
        try:
            result = await fetcher.fetch_one("https://blog.example/post")
        finally:
            await fetcher.aclose()

        assert result is not None
        assert result.title == "Great Post"
        assert result.summary == "A useful read."
        assert result.link == "https://blog.example/post"
        assert result.image == "https://blog.example/cover.png"
        assert result.type == "article"
        assert cache.get(article_key("https://blog.example/post")) == result

    @pytest.mark.asyncio()
    @respx.mock
    async def test_cached_result_skips_network(self, cache: TTLCache) -> None:
        route = respx.get("https://blog.example/post").mock(return_value=_ok("Post"))
        fetcher = ArticleMetadataFetcher(cache)
        try:
            await fetcher.fetch_one("https://blog.example/post")
            await fetcher.fetch_one("https://blog.example/post")
        finally:
            await fetcher.aclose()
        assert route.call_count == 1

    @pytest.mark.asyncio()
    @respx.mock
    async def test_error_page_rejected_and_not_cached(self, cache: TTLCache) -> None:
        respx.get("https://blog.example/gone").mock(
            return_value=_ok("Page not found", "The page you requested is missing.")
        )
        fetcher = ArticleMetadataFetcher(cache)
        try:
            assert await fetcher.fetch_one("https://blog.example/gone") is None
        finally:
            await fetcher.aclose()
        assert article_key("https://blog.example/gone") not in cache

    @pytest.mark.asyncio()
    @respx.mock
    @pytest.mark.parametrize("status", [404, 500])
    async def test_http_error_status_rejected(self, cache: TTLCache, status: int) -> None:
        respx.get("https://blog.example/x").mock(
            return_value=httpx.Response(status, text=_html("Looks fine"))
        )
        fetcher = ArticleMetadataFetcher(cache)
        try:
            assert await fetcher.fetch_one("https://blog.example/x") is None
        finally:
            await fetcher.aclose()

    @pytest.mark.asyncio()
    @respx.mock
    async def test_timeout_rejected(self, cache: TTLCache) -> None:
        respx.get("https://slow.example/").mock(side_effect=httpx.ReadTimeout("slow"))
        fetcher = ArticleMetadataFetcher(cache)
        try:
            assert await fetcher.fetch_one("https://slow.example/") is None
        finally:
            await fetcher.aclose()

    @pytest.mark.asyncio()
    @respx.mock
    async def test_non_html_rejected(self, cache: TTLCache) -> None:
        respx.get("https://files.example/paper.pdf").mock(
            return_value=httpx.Response(
                200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"}
            )
        )
        fetcher = ArticleMetadataFetcher(cache)
        try:
            assert await fetcher.fetch_one("https://files.example/paper.pdf") is None
        finally:
            await fetcher.aclose()

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("url", ["", "ftp://files.example/a", "not a url"])
    async def test_invalid_url_rejected(self, cache: TTLCache, url: str) -> None:
        fetcher = ArticleMetadataFetcher(cache)
        try:
            assert await fetcher.fetch_one(url) is None
        finally:
            await fetcher.aclose()


class TestFetchMany:
    """fetch_many bounds, order and dedupe."""

    @pytest.mark.asyncio()
    @respx.mock
    async def test_keeps_input_order_and_skips_failures(self, cache: TTLCache) -> None:
        respx.get("https://a.example/").mock(return_value=_ok("A"))
        respx.get("https://b.example/").mock(return_value=httpx.Response(404))
        respx.get("https://c.example/").mock(return_value=_ok("C"))
        fetcher = ArticleMetadataFetcher(cache)
        try:
            results = await fetcher.fetch_many(
                ["https://a.example/", "https://b.example/", "https://c.example/"]
            )
        finally:
            await fetcher.aclose()
        assert [r.title for r in results] == ["A", "C"]

    @pytest.mark.asyncio()
    @respx.mock
    async def test_only_first_ten_fetched_and_five_returned(self, cache: TTLCache) -> None:
        urls = [f"https://site{i}.example/" for i in range(12)]
        routes = [respx.get(url).mock(return_value=_ok(f"T{i}")) for i, url in enumerate(urls)]
        fetcher = ArticleMetadataFetcher(cache)
        try:
            results = await fetcher.fetch_many(urls)
        finally:
            await fetcher.aclose()

        assert [r.title for r in results] == ["T0", "T1", "T2", "T3", "T4"]
        assert not routes[10].called
        assert not routes[11].called

    @pytest.mark.asyncio()
    @respx.mock
    async def test_duplicate_links_returned_once(self, cache: TTLCache) -> None:
        respx.get("https://a.example/").mock(return_value=_ok("A"))
        fetcher = ArticleMetadataFetcher(cache)
        try:
            results = await fetcher.fetch_many(["https://a.example/", "https://a.example/"])
        finally:
            await fetcher.aclose()
        assert len(results) == 1

    @pytest.mark.asyncio()
    async def test_empty_input(self, cache: TTLCache) -> None:
        fetcher = ArticleMetadataFetcher(cache)
        try:
            assert await fetcher.fetch_many([]) == []
        finally:
            await fetcher.aclose()

    @pytest.mark.asyncio()
    @respx.mock
    async def test_custom_bounds(self, cache: TTLCache) -> None:
        urls = [f"https://s{i}.example/" for i in range(4)]
        for i, url in enumerate(urls):
            respx.get(url).mock(return_value=_ok(f"T{i}"))
        settings = ArticleSettings(max_candidates=3, max_results=2)
        fetcher = ArticleMetadataFetcher(cache, settings=settings)
        try:
            results = await fetcher.fetch_many(urls)
        finally:
            await fetcher.aclose()
        assert len(results) == 2
