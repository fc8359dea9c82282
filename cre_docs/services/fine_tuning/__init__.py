from cre_docs.services.fine_tuning.fine_tuning_service import (
    ALLOWED_TRANSITIONS,
    FineTuningService,
    TriggerCheckResult,
    check_transition,
    describe_remote_failure,
)
from cre_docs.services.fine_tuning.training_export_service import (
    ExportResult,
    TrainingExportService,
    validate_jsonl_format,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ExportResult",
    "FineTuningService",
    "TrainingExportService",
    "TriggerCheckResult",
    "check_transition",
    "describe_remote_failure",
    "validate_jsonl_format",
]
