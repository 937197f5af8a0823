"""Unit tests for link-preview metadata extraction."""

from __future__ import annotations

from unittest.mock import patch

from resource_aggregator.scraping.preview import extract_preview

URL = "https://news.example/articles/42"


class TestExtractPreview:
    """Tag precedence and URL resolution."""

    def test_open_graph_preferred(self) -> None:
        page = """
        <html><head>
          <title>Plain title</title>
          <meta name="twitter:title" content="Twitter title">
          <meta property="og:title" content="OG &amp; title">
          <meta name="description" content="Plain description">
          <meta property="og:description" content="OG description">
          <meta property="og:image" content="https://cdn.example/img.png">
        </head></html>
        """
        preview = extract_preview(page, URL)
        assert preview.title == "OG & title"
        assert preview.description == "OG description"
        assert preview.images == ["https://cdn.example/img.png"]

    def test_twitter_then_plain_fallbacks(self) -> None:
        page = """
        <head>
          <meta content="Card title" name="twitter:title">
          <meta name='description' content='Plain   description'>
          <meta name="twitter:image" content="/img/card.jpg">
        </head>
        """
        preview = extract_preview(page, URL)
        assert preview.title == "Card title"
        assert preview.description == "Plain description"
        assert preview.images == ["https://news.example/img/card.jpg"]

    def test_title_tag_used_without_meta_title(self) -> None:
        page = """
        <head>
          <title>
            Only the title tag
          </title>
          <meta name="description" content="Desc">
          <meta property="og:image" content="a.png">
        </head>
        """
        preview = extract_preview(page, URL)
        assert preview.title == "Only the title tag"
        assert preview.images == ["https://news.example/articles/a.png"]

    def test_inline_image_skips_data_uris(self) -> None:
        page = (
            "<head><title>T</title><meta name='description' content='D'></head>"
            '<body><img src="data:image/png;base64,xx"><img src="/hero.jpg"></body>'
        )
        with patch(
            "resource_aggregator.scraping.preview._fill_from_trafilatura"
        ) as fill:
            preview = extract_preview(page, URL)
        fill.assert_called_once()
        assert preview.images == ["https://news.example/hero.jpg"]

    def test_complete_metadata_skips_trafilatura(self) -> None:
        page = (
            '<meta property="og:title" content="T">'
            '<meta property="og:description" content="D">'
            '<meta property="og:image" content="https://cdn.example/i.png">'
        )
        with patch(
            "resource_aggregator.scraping.preview._fill_from_trafilatura"
        ) as fill:
            extract_preview(page, URL)
        fill.assert_not_called()

    def test_empty_page(self) -> None:
        with patch("resource_aggregator.scraping.preview._fill_from_trafilatura"):
            preview = extract_preview("", URL)
        assert preview.title == ""
        assert preview.description == ""
        assert preview.images == []
