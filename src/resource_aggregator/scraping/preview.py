"""Link-preview metadata extraction (Open Graph, Twitter cards, meta tags).

Reads the title, description and preview images a page advertises for
link unfurling. Open Graph tags win, then Twitter card tags, then plain
``<title>`` / ``<meta name="description">``; anything still missing is
filled from Trafilatura's metadata extractor.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from urllib.parse import urljoin

import structlog

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(
    r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
    re.IGNORECASE,
)
_TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_IMG_SRC_RE = re.compile(
    r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE
)
_WHITESPACE_RE = re.compile(r"\s+")

_TITLE_KEYS = ("og:title", "twitter:title")
_DESCRIPTION_KEYS = ("og:description", "twitter:description", "description")
_IMAGE_KEYS = ("og:image", "og:image:url", "og:image:secure_url", "twitter:image")


@dataclass(slots=True)
class LinkPreview:
    """Metadata a page exposes for link previews."""

    url: str
    title: str = ""
    description: str = ""
    images: list[str] = field(default_factory=list)


def _clean(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", html.unescape(text)).strip()


def _meta_tags(page: str) -> dict[str, str]:
    """Map ``property``/``name`` keys (lower-cased) to their first content."""
    tags: dict[str, str] = {}
    for tag in _META_TAG_RE.findall(page):
        attrs: dict[str, str] = {}
        for name, dq, sq, bare in _ATTR_RE.findall(tag):
            attrs[name.lower()] = dq or sq or bare
        key = (attrs.get("property") or attrs.get("name") or "").lower()
        content = attrs.get("content")
        if key and content and key not in tags:
            tags[key] = _clean(content)
    return tags


def _first(tags: dict[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        if tags.get(key):
            return tags[key]
    return ""


def _fill_from_trafilatura(preview: LinkPreview, page: str) -> None:
    import trafilatura

    try:
        document = trafilatura.extract_metadata(page, default_url=preview.url)
    except Exception as exc:
        logger.debug("preview_metadata_failed", url=preview.url, error=str(exc))
        return
    if document is None:
        return

    if not preview.title and getattr(document, "title", None):
        preview.title = _clean(document.title)
    if not preview.description and getattr(document, "description", None):
        preview.description = _clean(document.description)
    image = getattr(document, "image", None)
    if not preview.images and image:
        preview.images.append(urljoin(preview.url, image))


def extract_preview(page: str, url: str) -> LinkPreview:
    """Extract link-preview metadata from an HTML document.

    Args:
        page: Raw HTML text.
        url: Final URL of the page, used to resolve relative image links.

    Returns:
        A ``LinkPreview``; fields the page does not provide are empty.
    """
    tags = _meta_tags(page)
    preview = LinkPreview(
        url=url,
        title=_first(tags, _TITLE_KEYS),
        description=_first(tags, _DESCRIPTION_KEYS),
    )

    if not preview.title:
        title_match = _TITLE_RE.search(page)
        if title_match:
            preview.title = _clean(title_match.group(1))

    image = _first(tags, _IMAGE_KEYS)
    if image:
        preview.images.append(urljoin(url, image))

    if not (preview.title and preview.description and preview.images):
        _fill_from_trafilatura(preview, page)

    if not preview.images:
        for img_match in _IMG_SRC_RE.finditer(page):
            src = html.unescape(img_match.group(1))
            if not src.startswith("data:"):
                preview.images.append(urljoin(url, src))
                break

    return preview
