"""Recover a JSON object from free-text model output."""

import json
import re
from typing import Any, Callable, List, Optional

from cre_docs.core.exceptions import ParseError
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)\s*```")
_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")


def _fenced(pattern: re.Pattern) -> Callable[[str], Optional[str]]:
    def extract(text: str) -> Optional[str]:
        match = pattern.search(text)
        return match.group(1) if match else None

    return extract


def _strip_fences(text: str) -> str:
    return _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", text.strip())).strip()


# Ordered from strictest to loosest; the first candidate that parses wins
_STRATEGIES: List[tuple[str, Callable[[str], Optional[str]]]] = [
    ("direct", lambda text: text),
    ("json_fence", _fenced(_JSON_FENCE)),
    ("any_fence", _fenced(_ANY_FENCE)),
    ("strip_fences", _strip_fences),
]


def parse_json(raw_text: str) -> Any:
    """Parse JSON from a model response that may be fenced or loosely formatted.

    Args:
        raw_text: Raw text content returned by the model

    Returns:
        The decoded JSON value

    Raises:
        ParseError: If none of the recovery strategies yields valid JSON. The
            message includes the first 500 characters of the response.
    """
    text = raw_text or ""

    for name, strategy in _STRATEGIES:
        candidate = strategy(text)
        if candidate is None:
            continue
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if name != "direct":
            LOGGER.debug(f"Recovered JSON from model response using '{name}' strategy")
        return value

    LOGGER.error(
        "Failed to extract JSON from model response",
        extra={"response_length": len(text)},
    )
    raise ParseError(
        f"Could not parse JSON from model response. First 500 chars: {text[:500]}",
        raw_text=text,
    )
