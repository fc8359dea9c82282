"""Helpers shared by the training pipeline."""

import json
import math
from typing import Any, Dict, List, Tuple

MAX_UNVERIFIED_CONFIDENCE = 0.95


def calculate_confidence_score(extraction: Dict[str, Any]) -> float:
    """Heuristic confidence for an unverified extraction.

    Rewards populated metadata (up to 0.2) and the serialized size of the
    data payload. Capped at 0.95, since nothing is certain before review.
    """
    score = 0.5

    metadata = extraction.get("metadata")
    if isinstance(metadata, dict):
        populated = [value for value in metadata.values() if value is not None and value != ""]
        score += (len(populated) / 10) * 0.2

    data = extraction.get("data")
    if data:
        size = len(json.dumps(data, separators=(",", ":"), default=str))
        if size > 1000:
            score += 0.15
        elif size > 500:
            score += 0.10
        elif size > 100:
            score += 0.05

    return min(score, MAX_UNVERIFIED_CONFIDENCE)


def validate_extraction_data(data: Any) -> Tuple[bool, List[str]]:
    """Check the top-level structure of an extraction.

    Returns:
        Tuple of (valid, errors)
    """
    if not data:
        return False, ["Extraction data is null or undefined"]
    if not isinstance(data, dict):
        return False, ["Extraction data must be an object"]

    errors = []
    if not data.get("documentType"):
        errors.append("Missing documentType field")
    if not data.get("metadata"):
        errors.append("Missing metadata object")
    if not data.get("data"):
        errors.append("Missing data object")
    return not errors, errors


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def generate_changes_summary(before: Dict[str, Any], after: Dict[str, Any]) -> str:
    before = before or {}
    after = after or {}
    changes = []

    if before.get("documentType") != after.get("documentType"):
        changes.append(
            f"Document type changed from {before.get('documentType')} to {after.get('documentType')}"
        )
    if _canonical(before.get("metadata")) != _canonical(after.get("metadata")):
        changes.append("Metadata modified")
    if _canonical(before.get("data")) != _canonical(after.get("data")):
        changes.append("Data content modified")

    return ", ".join(changes) if changes else "No significant changes detected"


def quality_score_to_stars(score: float) -> int:
    # Half-up rounding, 0.5 -> 3 stars
    return int(math.floor(score * 5 + 0.5))


def stars_to_quality_score(stars: int) -> float:
    return stars / 5


def estimate_training_time(document_count: int) -> str:
    """Rough fine-tuning duration at half a minute per example."""
    total_minutes = document_count * 0.5
    if total_minutes < 60:
        return f"~{math.ceil(total_minutes)} minutes"
    hours = int(total_minutes // 60)
    minutes = math.ceil(total_minutes % 60)
    return f"~{hours}h {minutes}m"
