"""Data access layer."""

from cre_docs.repositories.base_repository import BaseRepository
from cre_docs.repositories.fine_tuning_job_repository import FineTuningJobRepository
from cre_docs.repositories.model_version_repository import ModelVersionRepository
from cre_docs.repositories.training_document_repository import TrainingDocumentRepository
from cre_docs.repositories.training_metrics_repository import TrainingMetricsRepository
from cre_docs.repositories.training_trigger_repository import TrainingTriggerRepository
from cre_docs.repositories.verification_edit_repository import VerificationEditRepository

__all__ = [
    "BaseRepository",
    "FineTuningJobRepository",
    "ModelVersionRepository",
    "TrainingDocumentRepository",
    "TrainingMetricsRepository",
    "TrainingTriggerRepository",
    "VerificationEditRepository",
]
