from cre_docs.services.feedback.feedback_analyzer import (
    CATEGORY_RULES,
    Difference,
    DocumentTypeLearnings,
    ErrorPattern,
    ParsedNotes,
    aggregate_patterns,
    analyze_extraction_differences,
    build_enhanced_prompt_section,
    build_learnings,
    categorize_error,
    generate_improvement_suggestions,
    parse_verification_notes,
)
from cre_docs.services.feedback.learning_service import LearningService

__all__ = [
    "CATEGORY_RULES",
    "Difference",
    "DocumentTypeLearnings",
    "ErrorPattern",
    "LearningService",
    "ParsedNotes",
    "aggregate_patterns",
    "analyze_extraction_differences",
    "build_enhanced_prompt_section",
    "build_learnings",
    "categorize_error",
    "generate_improvement_suggestions",
    "parse_verification_notes",
]
