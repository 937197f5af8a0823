"""Centralized exception hierarchy for the resource-aggregator package.

All domain-specific exceptions inherit from ``ResourceAggregatorError`` so
callers can catch the entire family with a single ``except`` clause.
Transient scrape and fetch failures are deliberately absent: those degrade
to empty results and never surface as exceptions.
"""

from __future__ import annotations


class ResourceAggregatorError(Exception):
    """Base exception for all resource-aggregator errors."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(ResourceAggregatorError):
    """Raised when required configuration (e.g. an AI credential) is missing.

    Fatal for the request: retrying will not help.
    """


# ---------------------------------------------------------------------------
# AI backend errors
# ---------------------------------------------------------------------------


class ModelInvocationError(ResourceAggregatorError):
    """Raised when an AI backend call fails after all retry attempts."""


# ---------------------------------------------------------------------------
# Transcript errors
# ---------------------------------------------------------------------------


class ChatNotFoundError(ResourceAggregatorError):
    """Raised when a chat does not exist or is owned by another user."""


# ---------------------------------------------------------------------------
# Auth errors
# ---------------------------------------------------------------------------


class AuthenticationError(ResourceAggregatorError):
    """Authentication error with HTTP-compatible metadata."""

    def __init__(self, detail: str, status_code: int = 401) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)
