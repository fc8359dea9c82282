"""Diffing of raw vs. verified extractions and synthesis of prompt learnings.

Everything in this module is pure: no I/O, deterministic for a given input.
``LearningService`` feeds it stored documents and persists the results.
"""

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

DATE_FORMAT_ERROR = "date_format_error"
MISSING_DATA = "missing_data"
FIELD_MISIDENTIFICATION = "field_misidentification"
CALCULATION_ERROR = "calculation_error"
UNIT_CONVERSION_ERROR = "unit_conversion_error"
CURRENCY_FORMAT_ERROR = "currency_format_error"
TABLE_PARSING_ERROR = "table_parsing_error"
OCR_ERROR = "ocr_error"
LOGIC_ERROR = "logic_error"
OTHER = "other"

SUGGESTION_THRESHOLD = 3
MAX_INSTRUCTIONS = 10
MAX_COMMON_ERRORS = 20
PROMPT_ERROR_EXAMPLES = 5


@dataclass
class Difference:
    path: str
    raw_value: Any
    verified_value: Any
    type: str


@dataclass
class ErrorPattern:
    field_path: str
    error_type: str
    frequency: int = 1
    example_corrections: List[str] = field(default_factory=list)
    affected_documents: List[str] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return self.field_path, self.error_type

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ErrorPattern":
        return cls(
            field_path=payload.get("field_path", ""),
            error_type=payload.get("error_type", OTHER),
            frequency=int(payload.get("frequency", 1)),
            example_corrections=list(payload.get("example_corrections") or []),
            affected_documents=list(payload.get("affected_documents") or []),
        )


@dataclass
class ParsedNotes:
    categories: List[str] = field(default_factory=list)
    key_learnings: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)


@dataclass
class DocumentTypeLearnings:
    """Learnings aggregated over the verified corpus of one document type."""

    document_type: str
    total_verifications: int = 0
    common_errors: List[ErrorPattern] = field(default_factory=list)
    aggregated_notes: List[str] = field(default_factory=list)
    improvement_suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _path_has(*words: str) -> Callable[[str, Any, Any], bool]:
    def predicate(path: str, raw: Any, verified: Any) -> bool:
        lowered = path.lower()
        return any(word in lowered for word in words)

    return predicate


def _raw_missing(path: str, raw: Any, verified: Any) -> bool:
    return raw is None or raw == ""


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None:
        return "null"
    return "object"


def _long_same_kind(path: str, raw: Any, verified: Any) -> bool:
    return _kind(raw) == _kind(verified) and len(_render(raw)) > 10


# First match wins. The order is significant: a path mentioning both "date"
# and "total" is a date_format_error.
CATEGORY_RULES: List[Tuple[Callable[[str, Any, Any], bool], str]] = [
    (_path_has("date", "expiration", "lease_start"), DATE_FORMAT_ERROR),
    (_raw_missing, MISSING_DATA),
    (_path_has("rent", "price", "amount", "cost"), CURRENCY_FORMAT_ERROR),
    (_path_has("total", "sum", "average"), CALCULATION_ERROR),
    (_path_has("square", "sqft", "sf", "footage"), UNIT_CONVERSION_ERROR),
    (_path_has("tenant", "unit", "suite"), TABLE_PARSING_ERROR),
    (_long_same_kind, FIELD_MISIDENTIFICATION),
]


def categorize_error(path: str, raw_value: Any, verified_value: Any) -> str:
    """Assign exactly one error category to a difference."""
    for predicate, category in CATEGORY_RULES:
        if predicate(path, raw_value, verified_value):
            return category
    return OTHER


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _correction(raw_value: Any, verified_value: Any) -> str:
    return f"{_render(raw_value)} → {_render(verified_value)}"


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _entries(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return {str(key): item for key, item in value.items()}
    if isinstance(value, list):
        return {str(index): item for index, item in enumerate(value)}
    return {}


_MISSING = object()


def _compare(raw: Any, verified: Any, path: str, differences: List[Difference]) -> None:
    raw_entries = _entries(raw)
    verified_entries = _entries(verified)
    keys = list(raw_entries)
    keys.extend(key for key in verified_entries if key not in raw_entries)

    for key in keys:
        child_path = f"{path}.{key}" if path else key
        raw_value = raw_entries.get(key, _MISSING)
        verified_value = verified_entries.get(key, _MISSING)

        if raw_value is _MISSING:
            differences.append(Difference(child_path, None, verified_value, "missing_field"))
        elif _is_container(raw_value) and _is_container(verified_value):
            _compare(raw_value, verified_value, child_path, differences)
        else:
            if verified_value is _MISSING:
                verified_value = None
            if raw_value != verified_value:
                differences.append(
                    Difference(child_path, raw_value, verified_value, "value_correction")
                )


def analyze_extraction_differences(
    raw_extraction: Any, verified_extraction: Any
) -> Tuple[List[Difference], List[ErrorPattern]]:
    """Structural diff of two extractions plus the error patterns it implies.

    Walks the union of keys at every depth (list items are addressed by
    index). Differences are grouped by ``(field_path, error_type)``.

    Returns:
        Tuple of (differences, error_patterns)
    """
    differences: List[Difference] = []
    if _is_container(raw_extraction) and _is_container(verified_extraction):
        _compare(raw_extraction, verified_extraction, "", differences)
    elif raw_extraction != verified_extraction:
        differences.append(
            Difference("", raw_extraction, verified_extraction, "value_correction")
        )

    patterns: Dict[Tuple[str, str], ErrorPattern] = {}
    for diff in differences:
        category = categorize_error(diff.path, diff.raw_value, diff.verified_value)
        correction = _correction(diff.raw_value, diff.verified_value)
        pattern = patterns.get((diff.path, category))
        if pattern is None:
            patterns[(diff.path, category)] = ErrorPattern(
                field_path=diff.path,
                error_type=category,
                example_corrections=[correction],
            )
        else:
            pattern.frequency += 1
            pattern.example_corrections.append(correction)

    return differences, list(patterns.values())


NOTE_CATEGORY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    (DATE_FORMAT_ERROR, ("date", "expiration")),
    (MISSING_DATA, ("missing", "blank", "empty")),
    (FIELD_MISIDENTIFICATION, ("wrong field", "misidentified")),
    (CALCULATION_ERROR, ("calculation", "total", "sum")),
    (CURRENCY_FORMAT_ERROR, ("currency", "dollar", "$")),
    (TABLE_PARSING_ERROR, ("table", "row", "column")),
]

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_INSTRUCTION = re.compile(r"\b(should|must|need to|always|never|remember)\b", re.IGNORECASE)


def parse_verification_notes(notes: Optional[str]) -> ParsedNotes:
    """Pull categories, instructions and key learnings out of reviewer notes.

    Sentences with an imperative marker (should, must, need to, always, never,
    remember) become instructions; other sentences longer than 20 characters
    become key learnings.
    """
    parsed = ParsedNotes()
    if not notes or not notes.strip():
        return parsed

    lowered = notes.lower()
    for category, keywords in NOTE_CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            parsed.categories.append(category)

    for sentence in _SENTENCE_SPLIT.split(notes):
        trimmed = sentence.strip()
        if not trimmed:
            continue
        if _INSTRUCTION.search(trimmed):
            parsed.instructions.append(trimmed)
        elif len(trimmed) > 20:
            parsed.key_learnings.append(trimmed)

    return parsed


SUGGESTION_TEMPLATES: Dict[str, str] = {
    DATE_FORMAT_ERROR: "Pay special attention to date formats. Common issues: {fields}",
    MISSING_DATA: "Always check for missing data in: {fields}",
    FIELD_MISIDENTIFICATION: "Verify correct field identification for: {fields}",
    CALCULATION_ERROR: "Double-check calculations for: {fields}",
    CURRENCY_FORMAT_ERROR: "Ensure proper currency formatting for: {fields}",
    TABLE_PARSING_ERROR: "Carefully parse table data for: {fields}",
}


def generate_improvement_suggestions(
    error_patterns: Sequence[ErrorPattern], instructions: Iterable[str]
) -> List[str]:
    """Natural-language suggestions for recurring error categories.

    A category yields a suggestion only when its summed frequency reaches
    ``SUGGESTION_THRESHOLD``. Up to ten distinct reviewer instructions follow.
    """
    by_category: Dict[str, List[ErrorPattern]] = {}
    for pattern in error_patterns:
        by_category.setdefault(pattern.error_type, []).append(pattern)

    suggestions: List[str] = []
    for category, patterns in by_category.items():
        total = sum(pattern.frequency for pattern in patterns)
        template = SUGGESTION_TEMPLATES.get(category)
        if total >= SUGGESTION_THRESHOLD and template:
            fields = ", ".join(pattern.field_path for pattern in patterns)
            suggestions.append(template.format(fields=fields))

    unique_instructions = list(dict.fromkeys(instructions))[:MAX_INSTRUCTIONS]
    suggestions.extend(unique_instructions)
    return suggestions


def merge_error_patterns(
    merged: Dict[Tuple[str, str], ErrorPattern],
    patterns: Iterable[ErrorPattern],
    document_id: str,
) -> None:
    """Fold one document's patterns into a running aggregate."""
    for pattern in patterns:
        existing = merged.get(pattern.key)
        if existing is None:
            pattern.affected_documents = [document_id]
            merged[pattern.key] = pattern
        else:
            existing.frequency += pattern.frequency
            existing.example_corrections.extend(pattern.example_corrections)
            existing.affected_documents.append(document_id)


def aggregate_patterns(
    patterns: Iterable[ErrorPattern], limit: int = MAX_COMMON_ERRORS
) -> List[ErrorPattern]:
    """Most frequent patterns first, capped at ``limit``."""
    return sorted(patterns, key=lambda pattern: pattern.frequency, reverse=True)[:limit]


def build_learnings(
    document_type: str,
    documents: Iterable[Dict[str, Any]],
) -> DocumentTypeLearnings:
    """Aggregate learnings from verified document snapshots.

    Args:
        document_type: Document type the snapshots belong to
        documents: Dicts with ``id``, ``verification_notes``,
            ``raw_extraction`` and ``verified_extraction``
    """
    merged: Dict[Tuple[str, str], ErrorPattern] = {}
    notes: List[str] = []
    instructions: List[str] = []
    total = 0

    for doc in documents:
        total += 1
        note = doc.get("verification_notes")
        if note:
            notes.append(note)
            instructions.extend(parse_verification_notes(note).instructions)

        raw = doc.get("raw_extraction")
        verified = doc.get("verified_extraction")
        if raw and verified:
            _, patterns = analyze_extraction_differences(raw, verified)
            merge_error_patterns(merged, patterns, str(doc.get("id")))

    common_errors = aggregate_patterns(merged.values())
    return DocumentTypeLearnings(
        document_type=document_type,
        total_verifications=total,
        common_errors=common_errors,
        aggregated_notes=notes,
        improvement_suggestions=generate_improvement_suggestions(common_errors, instructions),
    )


def build_enhanced_prompt_section(
    improvement_suggestions: Sequence[str],
    common_errors: Sequence[ErrorPattern],
) -> str:
    """Render the prompt section appended to a base extraction prompt.

    Returns an empty string when there is nothing to add.
    """
    section = ""
    if improvement_suggestions:
        section += "\n\n**IMPORTANT LEARNINGS FROM VERIFICATIONS:**\n"
        section += "Based on previous verifications, pay special attention to:\n"
        for index, suggestion in enumerate(improvement_suggestions, start=1):
            section += f"{index}. {suggestion}\n"

    if common_errors:
        section += "\n**COMMON ERRORS TO AVOID:**\n"
        for error in list(common_errors)[:PROMPT_ERROR_EXAMPLES]:
            label = error.error_type.replace("_", " ")
            section += f"- {error.field_path}: {label} (occurred {error.frequency} times)\n"
            if error.example_corrections:
                section += f"  Example correction: {error.example_corrections[0]}\n"

    return section
