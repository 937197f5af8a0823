"""structlog setup for the aggregator, plus per-request and per-stage context.

Every inbound chat request gets a short ``request_id`` bound into the
structlog context; the video and article paths each run inside a
``stage_logging_context`` so their log lines carry ``stage`` and timing;
``log_provenance`` records which article tier produced each returned link.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

_VALID_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Client libraries that log every request at INFO/DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "LiteLLM", "trafilatura")

_RENDERERS: dict[str, Callable[[], structlog.types.Processor]] = {
    "console": structlog.dev.ConsoleRenderer,
    "json": structlog.processors.JSONRenderer,
}


def generate_request_id() -> str:
    """Return a short unique identifier for one inbound chat request."""
    return uuid.uuid4().hex[:16]


# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


def _handlers(level: int, log_file: str | Path | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
    request_id: str | None = None,
) -> None:
    """Route structlog through stdlib logging with one shared formatter.

    Calling it again replaces the previous handlers, so the CLI and the
    tests can reconfigure freely.

    Args:
        level: Log level name, case-insensitive.
        fmt: ``"console"`` for human-readable lines, ``"json"`` for one
            JSON object per line.
        log_file: Optional file that receives the same lines as stderr.
        request_id: Bound to every subsequent entry when given.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_name = level.upper()
    if level_name not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)
    numeric_level = getattr(logging, level_name)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _RENDERERS.get(fmt, structlog.dev.ConsoleRenderer)(),
        ],
    )

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    for handler in _handlers(numeric_level, log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    if request_id:
        structlog.contextvars.bind_contextvars(request_id=request_id)


# ---------------------------------------------------------------------------
# Aggregation stages
# ---------------------------------------------------------------------------


@contextmanager
def stage_logging_context(
    stage: str,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Run a block as one named aggregation stage.

    ``stage`` and ``extra`` are bound to the structlog context for the
    block only. ``stage_start`` is logged on entry; ``stage_end`` on exit
    carries ``elapsed_ms`` and ``outcome`` (``"ok"`` or ``"error"``). An
    escaping exception is also logged as ``stage_error`` and re-raised.

    Example::

        with stage_logging_context("articles") as log:
            log.info("article_proposal", candidates=3)
    """
    log: structlog.stdlib.BoundLogger = structlog.get_logger(f"stage.{stage}")
    started = time.perf_counter()
    outcome = "ok"
    with structlog.contextvars.bound_contextvars(stage=stage, **extra):
        log.info("stage_start")
        try:
            yield log
        except Exception:
            outcome = "error"
            log.exception("stage_error")
            raise
        finally:
            log.info(
                "stage_end",
                outcome=outcome,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            )


def log_provenance(link: str, tier: str, *, stage: str = "articles", **details: Any) -> None:
    """Record that ``tier`` produced the resource at ``link``."""
    structlog.get_logger("provenance").info(
        "resource_provenance",
        link=link,
        tier=tier,
        stage=stage,
        **details,
    )
