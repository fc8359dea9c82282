from cre_docs.services.training.training_service import (
    BatchItemResult,
    BatchResult,
    TrainingService,
    VerificationResult,
)
from cre_docs.services.training.training_utils import (
    calculate_confidence_score,
    estimate_training_time,
    generate_changes_summary,
    quality_score_to_stars,
    stars_to_quality_score,
    validate_extraction_data,
)

__all__ = [
    "BatchItemResult",
    "BatchResult",
    "TrainingService",
    "VerificationResult",
    "calculate_confidence_score",
    "estimate_training_time",
    "generate_changes_summary",
    "quality_score_to_stars",
    "stars_to_quality_score",
    "validate_extraction_data",
]
