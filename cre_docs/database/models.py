"""SQLAlchemy models for the training and fine-tuning tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cre_docs.core.database import Base


class TrainingDocument(Base):
    """Uploaded document moving through extraction and human verification."""

    __tablename__ = "training_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_url: Mapped[str | None] = mapped_column(String, nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String, nullable=True)
    document_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    upload_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    processing_status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | completed | failed
    processed_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    raw_extraction: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    verified_extraction: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    verification_status: Mapped[str] = mapped_column(
        String, nullable=False, default="unverified"
    )  # unverified | in_review | verified | rejected
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_by: Mapped[str | None] = mapped_column(String, nullable=True)
    verified_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    requires_recheck: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    dataset_split: Mapped[str] = mapped_column(
        String, nullable=False, default="train"
    )  # train | validation | test
    training_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    include_in_training: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Bumped on every verification write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    edits: Mapped[list["VerificationEdit"]] = relationship(
        "VerificationEdit", back_populates="training_document", cascade="all, delete-orphan"
    )


class VerificationEdit(Base):
    """Audit record of a reviewer action on a training document."""

    __tablename__ = "verification_edits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    training_document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("training_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    editor_id: Mapped[str] = mapped_column(String, nullable=False)
    before_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    changes_made: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_action: Mapped[str] = mapped_column(
        String, nullable=False
    )  # verify | reject
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    edit_timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    training_document: Mapped["TrainingDocument"] = relationship(
        "TrainingDocument", back_populates="edits"
    )


class TrainingMetrics(Base):
    """Per document type learning insights and export bookkeeping."""

    __tablename__ = "training_metrics"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    learning_insights: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    last_export_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_training_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    training_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class FineTuningJob(Base):
    """Remote fine-tuning job tracked locally.

    Status only moves forward: pending -> uploading -> running -> succeeded | failed | cancelled.
    """

    __tablename__ = "fine_tuning_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    base_model: Mapped[str] = mapped_column(String, nullable=False)
    hyperparameters: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    openai_job_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    openai_file_id: Mapped[str | None] = mapped_column(String, nullable=True)
    openai_validation_file_id: Mapped[str | None] = mapped_column(String, nullable=True)

    training_examples_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    validation_examples_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    training_file_url: Mapped[str | None] = mapped_column(String, nullable=True)
    validation_file_url: Mapped[str | None] = mapped_column(String, nullable=True)

    fine_tuned_model_id: Mapped[str | None] = mapped_column(String, nullable=True)
    trained_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metrics: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    triggered_by: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ModelVersion(Base):
    """Deployable model produced by a fine-tuning job."""

    __tablename__ = "model_versions"
    __table_args__ = (
        UniqueConstraint("document_type", "version_number", name="uq_model_versions_type_number"),
        # At most one active version per document type
        Index(
            "uq_model_versions_one_active",
            "document_type",
            unique=True,
            postgresql_where=text("deployment_status = 'active'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    model_id: Mapped[str] = mapped_column(String, nullable=False)
    model_type: Mapped[str] = mapped_column(String, nullable=False, default="fine_tuned")  # base | fine_tuned
    fine_tuning_job_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("fine_tuning_jobs.id"), nullable=True
    )
    deployment_status: Mapped[str] = mapped_column(
        String, nullable=False, default="inactive"
    )  # inactive | testing | active | archived
    deployed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    traffic_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TrainingTrigger(Base):
    """Rolling verified-document counter that proposes fine-tuning runs."""

    __tablename__ = "training_triggers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    trigger_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    next_trigger_at: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    min_documents_required: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    auto_trigger_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_trigger_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_job_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    total_triggers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )
