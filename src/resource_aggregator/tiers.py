"""Ordered fallback tiers for article resources.

Each tier turns one grounded model proposal (candidate articles plus
search-grounding citations) into validated ``ArticleResult`` objects.
``run_tiers`` tries the tiers in order and stops at the first one that
yields anything. The default order prefers live-validated pages, then the
model's self-reported metadata, then grounding citations:

1. ``LiveCandidateTier``  - fetch each proposed link and keep real pages.
2. ``SelfReportedTier``   - trust the proposal's title/summary, minus
   anything that reads like an error page.
3. ``CitationTier``       - only when nothing was proposed: validate the
   citation URLs, else return the citations as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import structlog

from resource_aggregator.logging import log_provenance
from resource_aggregator.models import (
    ArticleCandidate,
    ArticleResult,
    Citation,
)
from resource_aggregator.scraping.articles import filter_error_pages

if TYPE_CHECKING:
    from collections.abc import Sequence

    from resource_aggregator.scraping.articles import ArticleMetadataFetcher

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_MAX_RESULTS = 5


@dataclass(slots=True)
class ArticleProposal:
    """Raw model output for the article path."""

    candidates: list[ArticleCandidate] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)

    @property
    def candidate_links(self) -> list[str]:
        return [candidate.link for candidate in self.candidates]

    @property
    def citation_links(self) -> list[str]:
        return [citation.url for citation in self.citations if citation.url]


class ArticleTier(Protocol):
    """One strategy in the article fallback chain."""

    name: str

    def applies(self, proposal: ArticleProposal) -> bool: ...

    async def resolve(self, proposal: ArticleProposal) -> list[ArticleResult]: ...


class LiveCandidateTier:
    name = "live_candidates"

    def __init__(self, fetcher: ArticleMetadataFetcher) -> None:
        self._fetcher = fetcher

    def applies(self, proposal: ArticleProposal) -> bool:
        return bool(proposal.candidates)

    async def resolve(self, proposal: ArticleProposal) -> list[ArticleResult]:
        return await self._fetcher.fetch_many(proposal.candidate_links)


class SelfReportedTier:
    name = "self_reported"

    def __init__(self, max_results: int = _DEFAULT_MAX_RESULTS) -> None:
        self._max_results = max_results

    def applies(self, proposal: ArticleProposal) -> bool:
        return bool(proposal.candidates)

    async def resolve(self, proposal: ArticleProposal) -> list[ArticleResult]:
        kept = filter_error_pages(proposal.candidates)[: self._max_results]
        return [
            ArticleResult(title=item.title, link=item.link, summary=item.summary)
            for item in kept
        ]


class CitationTier:
    name = "citations"

    def __init__(
        self,
        fetcher: ArticleMetadataFetcher,
        max_results: int = _DEFAULT_MAX_RESULTS,
    ) -> None:
        self._fetcher = fetcher
        self._max_results = max_results

    def applies(self, proposal: ArticleProposal) -> bool:
        return not proposal.candidates and bool(proposal.citations)

    async def resolve(self, proposal: ArticleProposal) -> list[ArticleResult]:
        validated = await self._fetcher.fetch_many(proposal.citation_links)
        if validated:
            return validated
        # Raw citations are the last resort.
        return [
            ArticleResult(
                title=citation.title,
                link=citation.url,
                summary=f"Learn more about {citation.title}",
            )
            for citation in proposal.citations
            if citation.url
        ][: self._max_results]


def default_tiers(
    fetcher: ArticleMetadataFetcher,
    max_results: int = _DEFAULT_MAX_RESULTS,
) -> list[ArticleTier]:
    return [
        LiveCandidateTier(fetcher),
        SelfReportedTier(max_results),
        CitationTier(fetcher, max_results),
    ]


async def run_tiers(
    tiers: Sequence[ArticleTier],
    proposal: ArticleProposal,
    max_results: int = _DEFAULT_MAX_RESULTS,
) -> tuple[str | None, list[ArticleResult]]:
    """Run ``tiers`` in order, returning the first non-empty result.

    Tiers run strictly one after another; a tier that does not apply to the
    proposal is skipped without being resolved.

    Args:
        tiers: Ordered fallback strategies.
        proposal: Candidates and citations from the model.
        max_results: Cap applied to the winning tier's output.

    Returns:
        The winning tier's name (None if every tier came up empty) and its
        capped results.
    """
    for tier in tiers:
        if not tier.applies(proposal):
            logger.debug("article_tier_skipped", tier=tier.name)
            continue
        results = await tier.resolve(proposal)
        logger.info("article_tier_resolved", tier=tier.name, results=len(results))
        if results:
            capped = results[:max_results]
            for article in capped:
                log_provenance(article.link, tier.name)
            return tier.name, capped
    return None, []
