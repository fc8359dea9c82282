"""Training pipeline endpoints: upload, batch extraction, verification and export."""

from dataclasses import asdict
from typing import Annotated, Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.api.v1.endpoints.documents import get_extraction_service, parse_document_type
from cre_docs.core.database import get_async_session as get_session
from cre_docs.schemas.documents import DocumentFile
from cre_docs.schemas.training import (
    ApiResponse,
    AutoSplitRequest,
    DifferencesRequest,
    ProcessBatchRequest,
    RejectRequest,
    TrainingDocumentResponse,
    TrainingExportRequest,
    VerificationEditResponse,
    VerifyRequest,
)
from cre_docs.services.extraction import ExtractionService
from cre_docs.services.feedback import LearningService, analyze_extraction_differences
from cre_docs.services.fine_tuning import TrainingExportService
from cre_docs.services.training import TrainingService
from cre_docs.utils.logging import get_logger
from cre_docs.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_training_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    extraction_service: Annotated[ExtractionService, Depends(get_extraction_service)],
) -> TrainingService:
    return TrainingService(db_session, extraction_service)


async def get_learning_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> LearningService:
    return LearningService(db_session)


async def get_training_export_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> TrainingExportService:
    return TrainingExportService(db_session)


def _document(document: Any) -> Dict[str, Any]:
    return TrainingDocumentResponse.model_validate(document).model_dump(mode="json")


@router.post(
    "/batch-upload",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload documents for training",
    operation_id="upload_training_documents",
)
async def batch_upload(
    files: List[UploadFile] = File(..., description="Documents of a single type"),
    document_type: str = Form(..., alias="documentType"),
    created_by: Optional[str] = Form(None, alias="createdBy"),
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    """Store files and create pending training records."""
    resolved_type = parse_document_type(document_type)
    document_files = [
        DocumentFile(
            name=upload.filename or "document",
            mime_type=upload.content_type or "application/octet-stream",
            content=await upload.read(),
        )
        for upload in files
    ]

    result = await training_service.upload_training_documents(
        document_files, resolved_type.value, created_by
    )
    documents = [_document(document) for document in result["documents"]]
    return create_api_response(
        data={"documents": documents, "errors": result["errors"]},
        message=f"Successfully uploaded {len(documents)} of {len(files)} documents",
    )


@router.get(
    "/documents",
    response_model=ApiResponse,
    summary="List training documents",
    operation_id="list_training_documents",
)
async def list_documents(
    document_type: Optional[str] = Query(None),
    processing_status: Optional[str] = Query(None),
    verification_status: Optional[str] = Query(None),
    dataset_split: Optional[str] = Query(None),
    is_verified: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    filters = {
        key: value
        for key, value in {
            "document_type": document_type,
            "processing_status": processing_status,
            "verification_status": verification_status,
            "dataset_split": dataset_split,
            "is_verified": is_verified,
        }.items()
        if value is not None
    }
    documents, total = await training_service.query_documents(filters, limit=limit, offset=offset)
    return create_api_response(
        data={
            "documents": [_document(document) for document in documents],
            "total": total,
            "limit": limit,
            "offset": offset,
        },
        message="Documents retrieved successfully",
    )


@router.get(
    "/document/{document_id}",
    response_model=ApiResponse,
    summary="Get a training document with its edit history",
    operation_id="get_training_document",
)
async def get_document(
    document_id: UUID,
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    document, history = await training_service.get_document(document_id)
    return create_api_response(
        data={
            "document": _document(document),
            "history": [
                VerificationEditResponse.model_validate(edit).model_dump(mode="json")
                for edit in history
            ],
        },
        message="Document details retrieved successfully",
    )


@router.post(
    "/process-batch",
    response_model=ApiResponse,
    summary="Run extraction for uploaded training documents",
    operation_id="process_training_batch",
)
async def process_batch(
    request_body: ProcessBatchRequest,
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    result = await training_service.process_batch(request_body.document_ids)
    return create_api_response(
        data={
            "processed": result.processed,
            "failed": result.failed,
            "results": [asdict(item) for item in result.results],
        },
        message=f"Processed {result.processed} documents, {result.failed} failed",
        success=result.success,
    )


@router.post(
    "/verify/{document_id}",
    response_model=ApiResponse,
    summary="Store a reviewer-verified extraction",
    operation_id="verify_training_document",
)
async def verify_document(
    document_id: UUID,
    request_body: VerifyRequest,
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    """Verify a document; may start a fine-tuning job as a side effect."""
    result = await training_service.verify_document(
        document_id,
        verified_extraction=request_body.verified_extraction,
        quality_score=request_body.quality_score,
        verification_notes=request_body.verification_notes,
        verified_by=request_body.verified_by,
        expected_version=request_body.expected_version,
    )
    return create_api_response(
        data={
            "document": _document(result.document),
            "fine_tuning_triggered": result.fine_tuning_triggered,
            "fine_tuning_job_id": result.fine_tuning_job_id,
            "feedback_categories": result.feedback_categories,
        },
        message=result.message,
    )


@router.post(
    "/reject/{document_id}",
    response_model=ApiResponse,
    summary="Reject a training document",
    operation_id="reject_training_document",
)
async def reject_document(
    document_id: UUID,
    request_body: RejectRequest,
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    document = await training_service.reject_document(
        document_id,
        reason=request_body.reason,
        rejected_by=request_body.rejected_by,
        expected_version=request_body.expected_version,
    )
    return create_api_response(data=_document(document), message="Document rejected")


@router.post(
    "/auto-split",
    response_model=ApiResponse,
    summary="Randomly assign verified documents to train and validation",
    operation_id="auto_assign_dataset_split",
)
async def auto_split(
    request_body: AutoSplitRequest,
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    document_type = (
        parse_document_type(request_body.document_type).value
        if request_body.document_type
        else None
    )
    results = await training_service.auto_assign_dataset_split(
        document_type, request_body.train_percentage
    )
    return create_api_response(
        data={"splits": results},
        message=f"Dataset split assigned for {len(results)} document types",
    )


@router.post(
    "/export",
    response_model=ApiResponse,
    summary="Export train and validation JSONL files",
    operation_id="export_training_data",
)
async def export_training_data(
    request_body: TrainingExportRequest,
    export_service: Annotated[TrainingExportService, Depends(get_training_export_service)] = None,
) -> ApiResponse:
    document_type = parse_document_type(request_body.document_type).value
    result = await export_service.export_training_data(document_type)
    stats = await export_service.get_training_data_stats(document_type)
    return create_api_response(
        data={**result.to_dict(), "stats": stats},
        message=(
            f"Exported {result.train_examples} training and "
            f"{result.validation_examples} validation examples"
        ),
    )


@router.get(
    "/metrics",
    response_model=ApiResponse,
    summary="Per document type training metrics",
    operation_id="get_training_metrics",
)
async def get_metrics(
    training_service: Annotated[TrainingService, Depends(get_training_service)] = None,
) -> ApiResponse:
    metrics = await training_service.get_training_metrics()
    return create_api_response(data={"metrics": metrics}, message="Metrics retrieved successfully")


@router.get(
    "/learnings/{document_type}",
    response_model=ApiResponse,
    summary="Aggregated verification learnings for a document type",
    operation_id="get_document_type_learnings",
)
async def get_learnings(
    document_type: str,
    learning_service: Annotated[LearningService, Depends(get_learning_service)] = None,
) -> ApiResponse:
    resolved_type = parse_document_type(document_type).value
    learnings = await learning_service.get_learnings(resolved_type)
    return create_api_response(data=learnings, message="Learnings retrieved successfully")


@router.post(
    "/differences",
    response_model=ApiResponse,
    summary="Compare a raw extraction with its verified version",
    operation_id="analyze_extraction_differences",
)
async def analyze_differences(request_body: DifferencesRequest) -> ApiResponse:
    differences, patterns = analyze_extraction_differences(
        request_body.raw_extraction, request_body.verified_extraction
    )
    return create_api_response(
        data={
            "differences": [asdict(difference) for difference in differences],
            "error_patterns": [pattern.to_dict() for pattern in patterns],
        },
        message=f"Found {len(differences)} differences",
    )
