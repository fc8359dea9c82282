"""Request and response models for the HTTP API."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from cre_docs.schemas.documents import DeploymentStatus


class ApiResponse(BaseModel):
    """Standard success envelope."""

    success: bool = Field(..., description="Whether the request succeeded")
    data: Any = Field(default=None, description="Response payload")
    message: Optional[str] = Field(default=None, description="Human-readable message")


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class TransformRequest(BaseModel):
    extracted_data: Dict[str, Any] = Field(..., alias="extractedData")

    model_config = ConfigDict(populate_by_name=True)


class ExportRequest(BaseModel):
    """Extractions to lay out in one workbook."""

    documents: List[Dict[str, Any]] = Field(..., description="Extraction results")
    file_names: Optional[List[Optional[str]]] = Field(
        default=None, alias="fileNames", description="Source file name per document"
    )

    model_config = ConfigDict(populate_by_name=True)


class ProcessBatchRequest(BaseModel):
    document_ids: List[UUID] = Field(..., min_length=1)


class VerifyRequest(BaseModel):
    verified_extraction: Dict[str, Any]
    quality_score: float
    verification_notes: Optional[str] = None
    verified_by: Optional[str] = None
    expected_version: Optional[int] = Field(
        default=None, description="Version the reviewer loaded; stale versions are rejected"
    )


class RejectRequest(BaseModel):
    reason: str
    rejected_by: Optional[str] = None
    expected_version: Optional[int] = None


class AutoSplitRequest(BaseModel):
    document_type: Optional[str] = None
    train_percentage: Optional[int] = Field(default=None, ge=0, le=100)


class TrainingExportRequest(BaseModel):
    document_type: str


class DifferencesRequest(BaseModel):
    raw_extraction: Any
    verified_extraction: Any


class StartFineTuningRequest(BaseModel):
    document_type: str
    triggered_by: Optional[str] = "manual"
    hyperparameters: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


class DeployRequest(BaseModel):
    deployment_status: DeploymentStatus = DeploymentStatus.ACTIVE
    traffic_percentage: int = Field(default=100, ge=0, le=100)
    notes: Optional[str] = None


class TrainingDocumentResponse(BaseModel):
    """Training document as returned to reviewers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    file_name: str
    file_path: str
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    document_type: str
    upload_date: Optional[datetime] = None
    processing_status: str
    processed_date: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    raw_extraction: Optional[Dict[str, Any]] = None
    verified_extraction: Optional[Dict[str, Any]] = None
    extraction_confidence: Optional[float] = None
    verification_status: str
    is_verified: bool
    verified_by: Optional[str] = None
    verified_date: Optional[datetime] = None
    verification_notes: Optional[str] = None
    dataset_split: str
    include_in_training: bool
    quality_score: Optional[float] = None
    version: int
    created_by: Optional[str] = None


class VerificationEditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    editor_id: str
    verification_action: str
    changes_made: Optional[str] = None
    notes: Optional[str] = None
    edit_timestamp: Optional[datetime] = None


class FineTuningJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_type: str
    status: str
    base_model: str
    hyperparameters: Optional[Dict[str, Any]] = None
    openai_job_id: Optional[str] = None
    training_examples_count: int = 0
    validation_examples_count: int = 0
    training_file_url: Optional[str] = None
    validation_file_url: Optional[str] = None
    fine_tuned_model_id: Optional[str] = None
    trained_tokens: Optional[int] = None
    metrics: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    triggered_by: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


class ModelVersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_type: str
    version_number: int
    model_id: str
    model_type: str
    fine_tuning_job_id: Optional[UUID] = None
    deployment_status: str
    deployed_at: Optional[datetime] = None
    traffic_percentage: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
