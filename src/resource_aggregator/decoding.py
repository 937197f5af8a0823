"""Decoding of structured output embedded in free-form model text.

Models asked for "ONLY valid JSON" still wrap answers in code fences or
prose. The decoders here try, in order: a direct parse, the body of a
fenced code block, then every bracket-balanced span in the text. The
outcome is a ``DecodeResult`` whose ``ok`` flag makes "unparseable" an
explicit value instead of an exception, so callers can route it into the
same path as "no candidates".
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


@dataclass(slots=True, frozen=True)
class DecodeResult:
    """Outcome of decoding structured output from model text."""

    ok: bool
    value: Any = None
    error: str = ""

    @classmethod
    def failure(cls, error: str) -> DecodeResult:
        return cls(ok=False, value=None, error=error)


def _balanced_spans(text: str, opener: str, closer: str) -> list[str]:
    """Return every bracket-balanced span starting at an ``opener``.

    String literals are tracked so brackets inside quoted values do not
    affect depth.
    """
    spans: list[str] = []
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            char = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    spans.append(text[start : pos + 1])
                    break
        start = text.find(opener, start + 1)
    return spans


def _decode(
    text: str | None,
    expected: type,
    opener: str,
    closer: str,
    accept: Callable[[Any], bool] | None = None,
) -> DecodeResult:
    if not text or not text.strip():
        return DecodeResult.failure("empty response")

    stripped = text.strip()
    attempts = [stripped]

    fence_match = _JSON_FENCE_RE.search(stripped)
    if fence_match:
        attempts.append(fence_match.group(1).strip())

    attempts.extend(_balanced_spans(stripped, opener, closer))

    # Greedy first-to-last span as a last resort for unbalanced prose.
    first, last = stripped.find(opener), stripped.rfind(closer)
    if first != -1 and last > first:
        attempts.append(stripped[first : last + 1])

    fallback: DecodeResult | None = None
    for candidate in attempts:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(value, expected):
            continue
        if accept is None or accept(value):
            return DecodeResult(ok=True, value=value)
        if fallback is None:
            fallback = DecodeResult(ok=True, value=value)

    if fallback is not None:
        return fallback

    logger.debug(
        "decode_failed",
        expected=expected.__name__,
        preview=stripped[:120],
    )
    return DecodeResult.failure(f"no JSON {expected.__name__} found")


def decode_json_array(
    text: str | None,
    item: Callable[[Any], bool] | None = None,
) -> DecodeResult:
    """Decode the first JSON array found in ``text``.

    With ``item``, the first array holding at least one matching element
    wins, so a citation marker such as ``[1]`` ahead of the payload is
    skipped. An array with no matching element is returned only when
    nothing better parses.
    """
    accept = None if item is None else lambda value: any(item(v) for v in value)
    return _decode(text, list, "[", "]", accept)


def decode_json_object(text: str | None) -> DecodeResult:
    """Decode the first JSON object found in ``text``."""
    return _decode(text, dict, "{", "}")


def decode_string_list(text: str | None) -> list[str]:
    """Decode a JSON array of strings, dropping non-string and blank items.

    Returns an empty list when the text holds no parseable array.
    """
    result = decode_json_array(text, item=_is_text)
    if not result.ok:
        return []
    return [item.strip() for item in result.value if _is_text(item)]


def _is_text(item: Any) -> bool:
    return isinstance(item, str) and bool(item.strip())
