"""Database module for SQLAlchemy models and session management."""

from cre_docs.core.database import Base, engine, get_async_session, db_client, init_database, close_database
from cre_docs.database.models import (
    FineTuningJob,
    ModelVersion,
    TrainingDocument,
    TrainingMetrics,
    TrainingTrigger,
    VerificationEdit,
)

__all__ = [
    "Base",
    "engine",
    "get_async_session",
    "db_client",
    "init_database",
    "close_database",
    "TrainingDocument",
    "VerificationEdit",
    "TrainingMetrics",
    "FineTuningJob",
    "ModelVersion",
    "TrainingTrigger",
]
