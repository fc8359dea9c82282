"""Classification, extraction, normalization and spreadsheet export endpoints."""

from typing import Annotated, List

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.core.anthropic_client import get_anthropic_client
from cre_docs.core.database import get_async_session as get_session
from cre_docs.core.exceptions import ValidationError
from cre_docs.schemas.documents import DocumentFile, DocumentType, PageImage
from cre_docs.schemas.training import ApiResponse, ExportRequest, TransformRequest
from cre_docs.services.classification import ClassificationService
from cre_docs.services.export import XLSX_MEDIA_TYPE, SpreadsheetExportService, export_filename
from cre_docs.services.extraction import ExtractionService
from cre_docs.services.feedback import LearningService
from cre_docs.services.normalization import transform_extracted_data
from cre_docs.utils.logging import get_logger
from cre_docs.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_classification_service() -> ClassificationService:
    return ClassificationService(get_anthropic_client())


async def get_extraction_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ExtractionService:
    return ExtractionService(
        get_anthropic_client(), learning_service=LearningService(db_session)
    )


async def get_spreadsheet_service() -> SpreadsheetExportService:
    return SpreadsheetExportService()


def parse_document_type(value: str) -> DocumentType:
    """Resolve a request value to a DocumentType.

    Raises:
        ValidationError: If the value names no known type
    """
    if not value or not DocumentType.is_valid(value):
        raise ValidationError(f"Invalid document type: {value}")
    return DocumentType(value)


@router.post(
    "/classify",
    response_model=ApiResponse,
    summary="Classify a document from its page images",
    operation_id="classify_document",
)
async def classify_document(
    images: List[UploadFile] = File(..., description="One image per page, in page order"),
    classification_service: Annotated[
        ClassificationService, Depends(get_classification_service)
    ] = None,
) -> ApiResponse:
    """Classify a document into one of the eight CRE categories."""
    pages = []
    for index, upload in enumerate(images, start=1):
        media_type = upload.content_type or ""
        if not media_type.startswith("image/"):
            raise ValidationError(f"Page {index} is not an image: {media_type or 'unknown type'}")
        pages.append(PageImage.from_bytes(await upload.read(), media_type, page_number=index))

    classification = await classification_service.classify_document(pages)
    return create_api_response(
        data=classification.model_dump(mode="json"),
        message=f"Document classified as {classification.type.value}",
    )


@router.post(
    "/extract",
    response_model=ApiResponse,
    summary="Extract structured data from a document",
    operation_id="extract_document",
)
async def extract_document(
    file: UploadFile = File(..., description="PDF, image or multi-page JSON bundle"),
    document_type: str = Form(..., alias="documentType"),
    extraction_service: Annotated[ExtractionService, Depends(get_extraction_service)] = None,
) -> ApiResponse:
    """Extract and normalize data for an already classified document."""
    resolved_type = parse_document_type(document_type)
    document_file = DocumentFile(
        name=file.filename or "document",
        mime_type=file.content_type or "application/octet-stream",
        content=await file.read(),
    )

    extracted = await extraction_service.extract_document_data(document_file, resolved_type)
    normalized = transform_extracted_data(extracted).to_payload()
    return create_api_response(
        data=normalized,
        message=f"Extracted {resolved_type.value} data from {document_file.name}",
    )


@router.post(
    "/transform",
    response_model=ApiResponse,
    summary="Normalize an extraction result",
    operation_id="transform_extracted_data",
)
async def transform_document(request_body: TransformRequest) -> ApiResponse:
    """Canonicalize a raw extraction into the typed result shape."""
    transformed = transform_extracted_data(request_body.extracted_data)
    return create_api_response(data=transformed.to_payload(), message="Extraction normalized")


@router.post(
    "/export",
    status_code=status.HTTP_200_OK,
    summary="Export extraction results as an Excel workbook",
    operation_id="export_extractions",
    response_class=Response,
)
async def export_documents(
    request_body: ExportRequest,
    spreadsheet_service: Annotated[
        SpreadsheetExportService, Depends(get_spreadsheet_service)
    ] = None,
) -> Response:
    """Download the given extractions as one ``.xlsx`` file."""
    content = spreadsheet_service.export(request_body.documents, request_body.file_names)
    document_type = (
        request_body.documents[0].get("documentType") if len(request_body.documents) == 1 else None
    )
    filename = export_filename(document_type)
    LOGGER.info(f"Spreadsheet export ready: {filename}", extra={"bytes": len(content)})
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
