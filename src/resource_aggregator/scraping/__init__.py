"""Best-effort scrapers: video search results and article link previews."""

from __future__ import annotations

from resource_aggregator.scraping.articles import (
    ArticleMetadataFetcher,
    filter_error_pages,
    is_error_page,
)
from resource_aggregator.scraping.preview import LinkPreview, extract_preview
from resource_aggregator.scraping.video import VideoSearchAdapter

__all__ = [
    "ArticleMetadataFetcher",
    "LinkPreview",
    "VideoSearchAdapter",
    "extract_preview",
    "filter_error_pages",
    "is_error_page",
]
