"""Ordered decode pipeline for generative provider responses.

JSON mode reduces but does not eliminate malformed output: models still wrap
JSON in markdown fences or surround it with prose. Each stage here is a pure
function; ``decode_response`` tries them in order:

    direct parse -> fenced block -> first balanced {...} span -> DecodeError
"""

import json
import logging
import re
from typing import Any

from meeting_insights.errors import DecodeError

logger = logging.getLogger(__name__)

__all__ = [
    "parse_direct",
    "extract_fenced_block",
    "extract_balanced_object",
    "decode_response",
]

_FENCE_RE = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\r?\n?(.*?)```", re.DOTALL)

# Sentinel distinguishing "no JSON" from a decoded JSON null
_MISSING = object()


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return _MISSING


def parse_direct(text: str) -> Any | None:
    """Decode the whole response as JSON.

    Returns:
        Decoded value, or None if the text is not valid JSON
    """
    value = _loads(text.strip())
    return None if value is _MISSING else value


def extract_fenced_block(text: str) -> str | None:
    """Return the body of the first markdown code fence, if any."""
    match = _FENCE_RE.search(text)
    if not match:
        return None
    body = match.group(1).strip()
    return body or None


def extract_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span in text.

    Braces inside JSON string literals (including escaped quotes) are not
    counted. Scanning restarts at the next ``{`` if a candidate never closes.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            char = text[idx]
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
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        start = text.find("{", start + 1)
    return None


def decode_response(text: str) -> Any:
    """Decode a provider response through the ordered recovery stages.

    Args:
        text: Raw response text

    Returns:
        Decoded JSON value

    Raises:
        DecodeError: If no stage yields valid JSON
    """
    if text is None or not text.strip():
        raise DecodeError("Empty response from provider")

    value = _loads(text.strip())
    if value is not _MISSING:
        logger.debug("Decoded response directly")
        return value

    fenced = extract_fenced_block(text)
    if fenced is not None:
        value = _loads(fenced)
        if value is not _MISSING:
            logger.debug("Decoded response from fenced code block")
            return value

    span = extract_balanced_object(fenced if fenced is not None else text)
    if span is None and fenced is not None:
        span = extract_balanced_object(text)
    if span is not None:
        value = _loads(span)
        if value is not _MISSING:
            logger.debug("Decoded response from balanced object span")
            return value

    logger.warning("No JSON found in response: %s", text[:200])
    raise DecodeError(f"No JSON found in response: {text[:200]!r}")
