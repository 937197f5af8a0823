"""Uvicorn server runner for the resource-aggregator API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uvicorn

from resource_aggregator.api.app import create_app

if TYPE_CHECKING:
    from resource_aggregator.config import Settings


def run_server(settings: Settings) -> None:
    """Run uvicorn with settings-backed host/port values."""
    uvicorn.run(
        create_app(settings),
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.logging.level.lower(),
    )
