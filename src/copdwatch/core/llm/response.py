"""Parsing of structured (JSON) output from the inner LLM."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

_IMPACT_SYNONYMS: dict[str, tuple[str, ...]] = {
    "high": ("high", "severe", "elevated", "critical", "major", "élevé", "eleve", "fort", "عالي", "مرتفع"),
    "medium": ("medium", "moderate", "mid", "moyen", "modéré", "modere", "متوسط"),
    "low": ("low", "minor", "minimal", "faible", "bas", "منخفض"),
}


class LLMResponseError(Exception):
    """Raised when LLM output cannot be used as the requested structure."""


def extract_json_object(content: str) -> dict[str, Any]:
    """Pull a JSON object out of model output.

    Accepts a bare object, an object inside a Markdown code fence, or an
    object surrounded by prose.

    Raises:
        LLMResponseError: If no JSON object can be decoded.
    """
    text = content.strip()
    if not text:
        raise LLMResponseError("Empty response from LLM")

    candidates = [text]
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first:last + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    logger.debug("Unparseable LLM output: %.200s", text)
    raise LLMResponseError("LLM response did not contain a JSON object")


def require_keys(data: dict[str, Any], required_keys: Iterable[str]) -> None:
    missing = [key for key in required_keys if key not in data]
    if missing:
        raise LLMResponseError(f"LLM response is missing keys: {', '.join(missing)}")


def normalize_impact(value: Any, default: str = "medium") -> str:
    """Map a free-form impact/level string onto "high", "medium" or "low"."""
    if not isinstance(value, str):
        return default
    lowered = value.strip().lower()
    for impact, synonyms in _IMPACT_SYNONYMS.items():
        if lowered in synonyms:
            return impact
    for impact, synonyms in _IMPACT_SYNONYMS.items():
        if any(word in lowered for word in synonyms):
            return impact
    return default
